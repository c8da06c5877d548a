"""PVC Migrator: move EBS-backed PersistentVolumeClaims between AWS Availability Zones."""

__version__ = "1.0.0"
