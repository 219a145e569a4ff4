"""Configuration settings for the record router."""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceSettings(BaseSettings):
    """Kafka source configuration."""

    bootstrap_servers: str = "localhost:9092"
    topic: str = "events"
    partition: int = Field(default=0, ge=0)
    group_id: str = "dlq-router"
    security_protocol: str = "PLAINTEXT"
    sasl_mechanism: str = "PLAIN"
    sasl_username: str = ""
    sasl_password: str = ""
    poll_timeout_seconds: float = Field(default=1.0, gt=0)
    # Stop reading once a poll returns nothing, instead of waiting forever
    stop_on_idle: bool = False
    error_backoff_seconds: float = Field(default=1.0, ge=0)
    unknown_topic_backoff_seconds: float = Field(default=5.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="SOURCE_")


class SinkSettings(BaseSettings):
    """Delta Lake output configuration."""

    base_path: str = "./data"
    valid_table: str = "valid_records"
    dead_letter_table: str = "dlq_records"
    s3_endpoint: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"

    model_config = SettingsConfigDict(env_prefix="SINK_")

    def get_storage_options(self) -> Optional[dict[str, str]]:
        """Return storage_options dict for S3/MinIO access, or None for local paths."""
        if self.base_path.startswith("s3://") or self.base_path.startswith("s3a://"):
            opts: dict[str, str] = {
                "AWS_REGION": self.aws_region,
                "AWS_S3_ALLOW_UNSAFE_RENAME": "true",
            }
            if self.s3_endpoint:
                opts["AWS_ENDPOINT_URL"] = self.s3_endpoint
                if self.s3_endpoint.startswith("http://"):
                    opts["AWS_ALLOW_HTTP"] = "true"
            if self.aws_access_key_id:
                opts["AWS_ACCESS_KEY_ID"] = self.aws_access_key_id
            if self.aws_secret_access_key:
                opts["AWS_SECRET_ACCESS_KEY"] = self.aws_secret_access_key
            return opts
        return None


class CheckpointSettings(BaseSettings):
    """Checkpoint store configuration."""

    storage_type: Literal["sqlite", "s3", "memory"] = Field(
        default="sqlite",
        description="Checkpoint backend",
    )
    db_path: str = "./data/checkpoints.db"
    s3_bucket: str = Field(
        default="dlq-router-checkpoints",
        description="S3 bucket name for checkpoints (used when storage_type=s3)",
    )
    s3_prefix: str = Field(
        default="checkpoints",
        description="S3 key prefix for checkpoints (used when storage_type=s3)",
    )

    model_config = SettingsConfigDict(env_prefix="CHECKPOINT_")


class RouterSettings(BaseSettings):
    """Routing behaviour."""

    # JSON Schema file describing valid records; takes precedence over required_fields
    schema_path: Optional[str] = None
    required_fields: str = Field(
        default="id,event_time",
        description="Comma-separated fields every valid record must carry",
    )

    batch_size: int = Field(default=500, ge=1)
    batch_interval_seconds: float = Field(default=10.0, gt=0)
    workers: int = Field(default=1, ge=1, le=64)

    # Retry settings for sink writes
    max_retries: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=0.5, ge=0)
    retry_max_delay_seconds: float = Field(default=30.0, ge=0)

    model_config = SettingsConfigDict(env_prefix="ROUTER_")

    def get_required_fields(self) -> list[str]:
        """Parse required_fields string into list."""
        return [f.strip() for f in self.required_fields.split(",") if f.strip()]


class Settings(BaseSettings):
    """Root settings container."""

    source: SourceSettings = Field(default_factory=SourceSettings)
    sink: SinkSettings = Field(default_factory=SinkSettings)
    checkpoint: CheckpointSettings = Field(default_factory=CheckpointSettings)
    router: RouterSettings = Field(default_factory=RouterSettings)

    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = False
    environment: str = "development"

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )


def get_settings() -> Settings:
    return Settings()
