"""S3-backed checkpoint store."""

import json
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import CheckpointStoreError
from .schema import utc_now

logger = logging.getLogger(__name__)


class S3CheckpointStore:
    """Stores each output's offset as a small JSON object in S3.

    Objects live at ``<key_prefix>/<output_name>.json``. A PUT that returns
    without error is durable.
    """

    def __init__(self, s3_client: Any, bucket_name: str, key_prefix: str) -> None:
        self.s3_client = s3_client
        self.bucket_name = bucket_name
        self.key_prefix = key_prefix.rstrip("/")

    def object_key(self, output_name: str) -> str:
        return f"{self.key_prefix}/{output_name}.json"

    def get(self, key: str) -> Optional[int]:
        object_key = self.object_key(key)
        try:
            response = self.s3_client.get_object(Bucket=self.bucket_name, Key=object_key)
            data: dict[str, Any] = json.loads(response["Body"].read())
        except ClientError as e:
            if e.response["Error"]["Code"] in ("NoSuchKey", "404"):
                logger.info("No checkpoint found at s3://%s/%s", self.bucket_name, object_key)
                return None
            raise CheckpointStoreError(
                f"Failed to read s3://{self.bucket_name}/{object_key}: {e}"
            ) from e
        except BotoCoreError as e:
            raise CheckpointStoreError(
                f"Failed to read s3://{self.bucket_name}/{object_key}: {e}"
            ) from e
        return int(data["offset"])

    def put(self, key: str, value: int) -> None:
        object_key = self.object_key(key)
        body = json.dumps(
            {"output_name": key, "offset": value, "updated_at": utc_now().isoformat()}
        ).encode("utf-8")
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=object_key,
                Body=body,
                ContentType="application/json",
            )
        except (ClientError, BotoCoreError) as e:
            raise CheckpointStoreError(
                f"Failed to write s3://{self.bucket_name}/{object_key}: {e}"
            ) from e
