import hmac
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response
from loguru import logger

from queue_relay.common.config import RelayConfig
from queue_relay.common.metrics import MetricsRegistry


router = APIRouter()

POST_SINK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


async def get_config(request: Request) -> RelayConfig:
    return request.app.state.config


async def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def is_authorized(token: Optional[str], authorization: Optional[str]) -> bool:
    if not token:
        return True
    return hmac.compare_digest(authorization or "", f"Bearer {token}")


@router.api_route("/health", methods=["GET", "HEAD"], response_class=PlainTextResponse)
async def health_check():
    return "OK"


@router.get("/metrics")
async def metrics_exposition(metrics: MetricsRegistry = Depends(get_metrics)):
    return Response(content=metrics.exposition(), media_type=metrics.content_type)


@router.api_route("/post", methods=POST_SINK_METHODS, response_class=PlainTextResponse)
async def post_sink(request: Request, config: RelayConfig = Depends(get_config)):
    """Echo sink for debugging inbound webhook traffic."""
    if not is_authorized(config.bearer_token, request.headers.get("Authorization")):
        logger.error("error invalid authorization header sent")
        return PlainTextResponse("403 - Invalid bearer token", status_code=403)

    if request.method != "POST":
        logger.error(f"error invalid method used: {request.method}")
        return PlainTextResponse("405 - Method not allowed", status_code=405)

    body = await request.body()
    logger.info(f"received post body:\n{body.decode('utf-8', errors='replace')}")
    return "OK"
