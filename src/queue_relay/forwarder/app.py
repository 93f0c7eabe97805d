import asyncio
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from loguru import logger

from queue_relay.admin.server import create_server
from queue_relay.common.config import RelayConfig
from queue_relay.common.metrics import MetricsRegistry
from queue_relay.common.queue import QueueClient, create_queue_client
from queue_relay.common.tls import create_ssl_context
from queue_relay.forwarder.client import WebhookForwarder
from queue_relay.forwarder.relay import RelayLoop


_app_config: Optional[RelayConfig] = None
_queue_client: Optional[QueueClient] = None
_forwarder: Optional[WebhookForwarder] = None
_relay_loop: Optional[RelayLoop] = None
_metrics: Optional[MetricsRegistry] = None


def get_app_config() -> RelayConfig:
    global _app_config
    if not _app_config:
        raise RuntimeError("Application config not initialized")
    return _app_config


def get_queue_client() -> QueueClient:
    global _queue_client
    if not _queue_client:
        raise RuntimeError("Queue client not initialized")
    return _queue_client


def load_config_from_file(config_path: str) -> RelayConfig:
    """Load configuration from a YAML file, completed from the environment."""
    file_path = Path(config_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(file_path, "r") as f:
        config_data = yaml.safe_load(f) or {}

    return RelayConfig(**config_data)


def load_config(config_path: Optional[str] = None) -> RelayConfig:
    if config_path:
        return load_config_from_file(config_path)
    return RelayConfig()


def setup_app(config: RelayConfig):
    """Initialize the application with the given config."""
    global _app_config, _queue_client, _forwarder, _relay_loop, _metrics

    # Configure logging
    logger.remove()
    logger.add(
        sys.stdout,
        level=config.log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    )

    # Validate queue configuration
    config.validate_queue_config()

    _metrics = MetricsRegistry()

    ssl_context = create_ssl_context(config.tls.ca_file)

    _queue_client = create_queue_client(config)

    _forwarder = WebhookForwarder(
        target_url=config.webhook_url,
        auth_token=config.bearer_token,
        ssl_context=ssl_context,
        timeout=config.timeout,
    )

    _relay_loop = RelayLoop(
        queue_client=_queue_client,
        forwarder=_forwarder,
        metrics=_metrics,
        batch_size=config.batch_size,
        ack_policy=config.ack_policy,
    )

    _app_config = config

    logger.info("Queue Relay initialized")
    logger.info(f"Queue type: {config.queue_type.value}")
    logger.info(f"Target URL: {config.webhook_url}")


async def run_relay():
    """Serve the admin surface and run the relay loop until one of them stops."""
    global _app_config, _queue_client, _forwarder, _relay_loop, _metrics

    server = create_server(_app_config, _metrics)
    scheme = "HTTPS" if _app_config.tls.serve_https else "HTTP"
    logger.info(
        f"start {scheme} server on {_app_config.admin.host}:{_app_config.admin.port}"
    )

    # uvicorn exits the process itself when the listener cannot bind
    server_task = asyncio.create_task(server.serve())
    relay_task = asyncio.create_task(_relay_loop.run())

    try:
        done, _ = await asyncio.wait(
            {server_task, relay_task}, return_when=asyncio.FIRST_COMPLETED
        )

        if relay_task in done:
            server.should_exit = True
            await server_task
            relay_task.result()
        else:
            relay_task.cancel()
            await asyncio.gather(relay_task, return_exceptions=True)
            server_task.result()
            if not server.should_exit:
                raise RuntimeError("Admin server stopped unexpectedly")
            logger.info("Queue Relay stopped")
    finally:
        await _forwarder.close()
        await _queue_client.close()


@click.group()
def cli():
    """Queue Relay CLI"""
    pass


@cli.command("serve")
@click.option(
    "--config",
    "-c",
    default=None,
    help="Path to YAML configuration file (environment variables fill in the rest)",
)
def serve(config: Optional[str]):
    """Start the admin server and the relay loop."""
    try:
        config_obj = load_config(config)
        setup_app(config_obj)
        asyncio.run(run_relay())
    except Exception as e:
        logger.error(f"Queue Relay failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    cli()
