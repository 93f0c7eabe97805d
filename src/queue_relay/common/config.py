import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

from dotenv import dotenv_values
from pydantic import BaseModel, Field, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from queue_relay.common.models import AckPolicy

# Unprefixed variable names accepted for existing deployments
LEGACY_ENV_VARS = {
    "WEBHOOK_URL": ("webhook_url",),
    "HTTP_BEARER_TOKEN": ("bearer_token",),
    "AZURE_SERVICEBUS_CONNECTION_STRING": ("azure_config", "connection_string"),
    "AZURE_SERVICEBUS_QUEUE_NAME": ("azure_config", "queue_name"),
    "TLS_CA_FILE": ("tls", "ca_file"),
    "TLS_CERT_FILE": ("tls", "cert_file"),
    "TLS_KEY_FILE": ("tls", "key_file"),
}
LEGACY_LISTEN_VAR = "HTTP_LISTEN"


class QueueType(str, Enum):
    AZURE_SERVICE_BUS = "azure_servicebus"
    AWS_SQS = "aws_sqs"
    GCP_PUBSUB = "gcp_pubsub"


class AzureServiceBusConfig(BaseModel):
    connection_string: str
    queue_name: str
    max_wait_time: Optional[float] = None  # None waits for the first message


class AWSSQSConfig(BaseModel):
    region_name: str
    queue_url: str
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    role_arn: Optional[str] = None
    wait_time_seconds: int = Field(default=20, ge=0, le=20)


class GCPPubSubConfig(BaseModel):
    project_id: str
    subscription_id: str


class TLSConfig(BaseModel):
    ca_file: Optional[str] = None  # extra CA for outbound webhook calls
    cert_file: Optional[str] = None  # admin surface certificate
    key_file: Optional[str] = None

    @model_validator(mode="after")
    def check_cert_pair(self) -> "TLSConfig":
        if bool(self.cert_file) != bool(self.key_file):
            raise ValueError("cert_file and key_file must be configured together")
        return self

    @property
    def serve_https(self) -> bool:
        return bool(self.cert_file and self.key_file)


class AdminConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080


def parse_listen_address(address: str) -> Dict[str, Any]:
    """Split a ``host:port`` listen address, an empty host meaning all interfaces."""
    host, separator, port = address.rpartition(":")
    if not separator or not port.isdigit():
        raise ValueError(f"Invalid listen address: {address!r}")
    return {"host": host.strip("[]") or "0.0.0.0", "port": int(port)}


class LegacyEnvSettingsSource(PydanticBaseSettingsSource):
    """Read the unprefixed variable names from the environment and ``.env``."""

    def _raw_values(self) -> Dict[str, Optional[str]]:
        values: Dict[str, Optional[str]] = {}
        env_files = self.config.get("env_file")
        if isinstance(env_files, (str, os.PathLike)):
            env_files = [env_files]
        for env_file in env_files or []:
            if Path(env_file).is_file():
                values.update(dotenv_values(env_file))
        values.update(os.environ)
        return values

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self().get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        raw = self._raw_values()
        data: Dict[str, Any] = {}

        for env_name, path in LEGACY_ENV_VARS.items():
            value = raw.get(env_name)
            if not value:
                continue
            target = data
            for key in path[:-1]:
                target = target.setdefault(key, {})
            target[path[-1]] = value

        listen = raw.get(LEGACY_LISTEN_VAR)
        if listen:
            data["admin"] = parse_listen_address(listen)

        return data


class RelayConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_prefix="QUEUE_RELAY_",
        env_file=".env",
        extra="ignore",
    )

    log_level: str = "INFO"
    queue_type: QueueType = QueueType.AZURE_SERVICE_BUS
    azure_config: Optional[AzureServiceBusConfig] = None
    aws_config: Optional[AWSSQSConfig] = None
    gcp_config: Optional[GCPPubSubConfig] = None

    webhook_url: str
    bearer_token: Optional[str] = None
    batch_size: int = Field(default=5, ge=1, le=100)
    ack_policy: AckPolicy = AckPolicy.ALWAYS
    timeout: Optional[float] = None  # seconds, None keeps the aiohttp default

    admin: AdminConfig = AdminConfig()
    tls: TLSConfig = TLSConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Prefixed variables always win over the legacy names
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            LegacyEnvSettingsSource(settings_cls),
            file_secret_settings,
        )

    def validate_queue_config(self) -> None:
        if self.queue_type == QueueType.AZURE_SERVICE_BUS and not self.azure_config:
            raise ValueError(
                "Azure Service Bus selected but no Azure configuration provided"
            )
        if self.queue_type == QueueType.AWS_SQS and not self.aws_config:
            raise ValueError("AWS SQS selected but no AWS configuration provided")
        if self.queue_type == QueueType.GCP_PUBSUB and not self.gcp_config:
            raise ValueError("GCP PubSub selected but no GCP configuration provided")
