"""Centralized constants for PVC Migrator to eliminate duplicate strings."""

# Defaults
DEFAULT_NAMESPACE = "default"
DEFAULT_TARGET_ZONE = "eu-west-1a"
DEFAULT_STORAGE_CLASS = "gp3"
DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_ARGOCD_NAMESPACES = ("argocd", "argo-cd", "gitops")
DEFAULT_CONFIG_FILENAME = "pvc-migrator.yaml"

# Cloud volume states
SNAPSHOT_STATE_COMPLETED = "completed"
SNAPSHOT_STATE_ERROR = "error"
VOLUME_STATE_CREATING = "creating"
VOLUME_STATE_AVAILABLE = "available"
VOLUME_STATE_ERROR = "error"

# Coarse progress while a volume is being created
VOLUME_PROGRESS_CREATING = 25
VOLUME_PROGRESS_OTHER = 50
PROGRESS_COMPLETE = 100

# Kubernetes
STATIC_PV_SUFFIX = "-static"
MIGRATED_LABEL = "migrated"
ZONE_TOPOLOGY_KEY = "topology.kubernetes.io/zone"
EBS_CSI_DRIVER = "ebs.csi.aws.com"
DEFAULT_FS_TYPE = "ext4"
STORAGE_RESOURCE = "storage"
KIND_DEPLOYMENT = "Deployment"
KIND_STATEFULSET = "StatefulSet"
MERGE_PATCH_CONTENT_TYPE = "application/merge-patch+json"

# ArgoCD custom resources
ARGOCD_GROUP = "argoproj.io"
ARGOCD_VERSION = "v1alpha1"
ARGOCD_APPLICATIONS = "applications"

# EBS tags
TAG_NAME = "Name"
TAG_MIGRATED_PVC = "MigratedPVC"
TAG_CREATED_FOR_PVC_NAME = "kubernetes.io/created-for/pvc/name"
TAG_CREATED_FOR_PVC_NAMESPACE = "kubernetes.io/created-for/pvc/namespace"
EBS_VOLUME_TYPE = "gp3"

# Compensation record kinds
RESTORE_KIND_WORKLOAD = "workload"
RESTORE_KIND_SYNC_AUTOMATION = "sync-automation"
