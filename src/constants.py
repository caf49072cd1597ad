"""Constants used across the operator."""

# Owning custom resource
CRD_GROUP = "sunet.se"
CRD_VERSION = "v1alpha1"
CRD_PLURAL = "clusterinstallations"
CRD_KIND = "ClusterInstallation"

# Reserved ownership labels stamped on every child resource
LABEL_PREFIX = "cluster.sunet.se"
LABEL_APP = f"{LABEL_PREFIX}/app"
LABEL_APP_VALUE = "cluster-operator"
LABEL_NAMESPACE = f"{LABEL_PREFIX}/namespace"
LABEL_INSTALLATION = f"{LABEL_PREFIX}/installation"
LABEL_CLUSTER = f"{LABEL_PREFIX}/cluster"
LABEL_SHARD = f"{LABEL_PREFIX}/shard"
LABEL_HOST = f"{LABEL_PREFIX}/host"
LABEL_TEMPLATE = f"{LABEL_PREFIX}/template"

RESERVED_LABELS = frozenset(
    {
        LABEL_APP,
        LABEL_NAMESPACE,
        LABEL_INSTALLATION,
        LABEL_CLUSTER,
        LABEL_SHARD,
        LABEL_HOST,
        LABEL_TEMPLATE,
    }
)

# Digest of the desired manifest last applied to a child resource
ANNOTATION_APPLIED_HASH = f"{LABEL_PREFIX}/applied-hash"

FINALIZER = "sunet.se/cluster-operator"
