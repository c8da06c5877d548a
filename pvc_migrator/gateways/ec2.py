"""AWS EC2 volume gateway for EBS snapshot and volume operations."""

import asyncio
import re
from collections.abc import Callable
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from ..constants import (
    EBS_VOLUME_TYPE,
    TAG_CREATED_FOR_PVC_NAME,
    TAG_CREATED_FOR_PVC_NAMESPACE,
    TAG_MIGRATED_PVC,
    TAG_NAME,
)
from ..core.exceptions import GatewayError
from ..models.cluster import VolumeInfo
from ..utils import sanitize_tag
from .interfaces import VolumeGateway

logger = structlog.get_logger()

_PROGRESS_RE = re.compile(r"^\s*(\d+)")


def _tags(pairs: dict[str, str]) -> list[dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in pairs.items()]


def parse_progress(progress: str | None) -> int:
    """Parse EC2's "NN%" snapshot progress; anything unparseable counts as 0."""
    match = _PROGRESS_RE.match(progress or "")
    return int(match.group(1)) if match else 0


class EC2Gateway(VolumeGateway):
    """VolumeGateway backed by the EC2 API."""

    def __init__(self, ec2_client: Any):
        self.ec2 = ec2_client
        self.logger = logger.bind(component="ec2_gateway")

    @classmethod
    def from_environment(cls, region: str | None = None) -> "EC2Gateway":
        """Build a gateway from the default AWS credential chain.

        Raises:
            GatewayError: If the AWS configuration cannot be loaded
        """
        try:
            session = boto3.session.Session(region_name=region)
            return cls(session.client("ec2"))
        except BotoCoreError as e:
            raise GatewayError(f"failed to load AWS config: {e}") from e

    async def _call(self, action: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as e:
            error = e.response.get("Error", {})
            raise GatewayError(
                f"{action}: {error.get('Code', 'Unknown')}: {error.get('Message', str(e))}"
            ) from e
        except BotoCoreError as e:
            raise GatewayError(f"{action}: {e}") from e

    async def create_snapshot(self, volume_id: str, label: str, target_zone: str) -> str:
        safe_label = sanitize_tag(label)
        result = await self._call(
            f"failed to snapshot volume {volume_id}",
            self.ec2.create_snapshot,
            VolumeId=volume_id,
            Description=f"Migrate {label} to {target_zone}",
            TagSpecifications=[
                {
                    "ResourceType": "snapshot",
                    "Tags": _tags({TAG_NAME: f"migrate-{safe_label}", TAG_MIGRATED_PVC: safe_label}),
                }
            ],
        )
        snapshot_id = result["SnapshotId"]
        self.logger.info("Created snapshot", volume_id=volume_id, snapshot_id=snapshot_id)
        return snapshot_id

    async def get_snapshot_progress(self, snapshot_id: str) -> tuple[int, str]:
        result = await self._call(
            f"failed to describe snapshot {snapshot_id}",
            self.ec2.describe_snapshots,
            SnapshotIds=[snapshot_id],
        )
        snapshots = result.get("Snapshots", [])
        if not snapshots:
            raise GatewayError(f"snapshot not found: {snapshot_id}")
        snapshot = snapshots[0]
        return parse_progress(snapshot.get("Progress")), snapshot.get("State", "")

    async def create_volume(
        self, snapshot_id: str, zone: str, label: str, namespace: str, size_gib: int
    ) -> str:
        safe_label = sanitize_tag(label)
        result = await self._call(
            f"failed to create volume from snapshot {snapshot_id}",
            self.ec2.create_volume,
            AvailabilityZone=zone,
            SnapshotId=snapshot_id,
            VolumeType=EBS_VOLUME_TYPE,
            Size=size_gib,
            TagSpecifications=[
                {
                    "ResourceType": "volume",
                    "Tags": _tags(
                        {
                            TAG_NAME: f"migrated-{safe_label}",
                            TAG_MIGRATED_PVC: safe_label,
                            TAG_CREATED_FOR_PVC_NAME: safe_label,
                            TAG_CREATED_FOR_PVC_NAMESPACE: sanitize_tag(namespace),
                        }
                    ),
                }
            ],
        )
        volume_id = result["VolumeId"]
        self.logger.info(
            "Created volume", snapshot_id=snapshot_id, volume_id=volume_id, zone=zone, size_gib=size_gib
        )
        return volume_id

    async def _describe_volume(self, volume_id: str) -> dict[str, Any]:
        result = await self._call(
            f"failed to describe volume {volume_id}",
            self.ec2.describe_volumes,
            VolumeIds=[volume_id],
        )
        volumes = result.get("Volumes", [])
        if not volumes:
            raise GatewayError(f"volume not found: {volume_id}")
        return volumes[0]

    async def get_volume_state(self, volume_id: str) -> str:
        volume = await self._describe_volume(volume_id)
        return volume.get("State", "")

    async def get_volume_info(self, volume_id: str) -> VolumeInfo:
        volume = await self._describe_volume(volume_id)
        return VolumeInfo(
            volume_id=volume.get("VolumeId", volume_id),
            availability_zone=volume.get("AvailabilityZone", ""),
            state=volume.get("State", ""),
        )
