"""Checkpoint tracking and durable checkpoint stores."""

import logging
from typing import TYPE_CHECKING

from .tracker import CheckpointStore, CheckpointTracker, MemoryCheckpointStore

if TYPE_CHECKING:
    from ..settings import CheckpointSettings

logger = logging.getLogger(__name__)

__all__ = [
    "CheckpointStore",
    "CheckpointTracker",
    "MemoryCheckpointStore",
    "get_checkpoint_store",
]


def get_checkpoint_store(settings: "CheckpointSettings") -> CheckpointStore:
    """Get checkpoint store based on configuration.

    Raises:
        ValueError: If storage type is s3 but boto3 is not available
        ValueError: If storage type is unknown
    """
    storage_type = settings.storage_type

    if storage_type == "memory":
        logger.warning("Using in-memory checkpoint store; progress is lost on restart")
        return MemoryCheckpointStore()

    if storage_type == "sqlite":
        from .sqlite_store import SqliteCheckpointStore

        return SqliteCheckpointStore.from_path(settings.db_path)

    if storage_type == "s3":
        try:
            import boto3
        except ImportError as exc:
            raise ValueError(
                "S3 checkpoint backend requires boto3. Install with: pip install boto3"
            ) from exc

        from .s3_store import S3CheckpointStore

        logger.info(
            "Using S3 checkpoint store: s3://%s/%s",
            settings.s3_bucket,
            settings.s3_prefix,
        )
        return S3CheckpointStore(
            s3_client=boto3.client("s3"),
            bucket_name=settings.s3_bucket,
            key_prefix=settings.s3_prefix,
        )

    raise ValueError(
        f"Unknown checkpoint storage type: {storage_type}. Expected 'sqlite', 's3' or 'memory'"
    )
