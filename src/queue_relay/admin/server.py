import uvicorn
from fastapi import FastAPI
from uvicorn.config import LOG_LEVELS

from queue_relay.admin.routes import router
from queue_relay.common.config import RelayConfig
from queue_relay.common.metrics import MetricsRegistry


def create_app(config: RelayConfig, metrics: MetricsRegistry) -> FastAPI:
    app = FastAPI(
        title="Queue Relay Admin",
        description="Health, metrics and debugging endpoints for the queue relay",
        version="0.1.0",
    )
    app.state.config = config
    app.state.metrics = metrics

    app.include_router(router)

    return app


def uvicorn_log_level(log_level: str) -> str:
    level = log_level.lower()
    return level if level in LOG_LEVELS else "info"


def create_server(config: RelayConfig, metrics: MetricsRegistry) -> uvicorn.Server:
    app = create_app(config, metrics)

    server_kwargs = {}
    if config.tls.serve_https:
        server_kwargs.update({
            "ssl_certfile": config.tls.cert_file,
            "ssl_keyfile": config.tls.key_file,
        })

    return uvicorn.Server(
        uvicorn.Config(
            app,
            host=config.admin.host,
            port=config.admin.port,
            log_level=uvicorn_log_level(config.log_level),
            **server_kwargs,
        )
    )
