"""FastAPI routes for the Checkout domain: gateway webhooks."""

import json
import os

import structlog
from fastapi import APIRouter, BackgroundTasks, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from checkout.api.schemas import (
    ConfigureGatewayRequest,
    GatewayConfigResponse,
    WebhookErrorResponse,
    WebhookResponse,
)
from checkout.gateway import get_gateway
from checkout.gateway.fake_adapter import FakeGateway
from checkout.tasks.executor import run_post_tasks
from checkout.webhook.event import GatewayEvent
from checkout.webhook.processing import DeliveryOutcome, is_replayed, process_gateway_event

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post(
    "/gateway",
    response_model=WebhookResponse,
    responses={500: {"model": WebhookErrorResponse}},
)
async def receive_gateway_event(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: str = Header(default=""),
):
    """Receive one gateway notification.

    Responds 200 once the event is handled (or known to be a duplicate) and
    500 when handling failed, so the gateway redelivers it. Emails and cache
    invalidation run after the response.
    """
    payload = await request.body()
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="No signature")
    if not get_gateway().verify_webhook_signature(payload, stripe_signature):
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    try:
        event = GatewayEvent.from_dict(json.loads(payload))
    except (ValueError, KeyError) as exc:
        raise HTTPException(status_code=400, detail=f"Malformed event: {exc}") from exc

    if is_replayed(event):
        logger.warning("Gateway event too old, rejected", event_id=event.id, created=event.created)
        raise HTTPException(status_code=400, detail="Event too old (anti-replay protection)")

    processed = process_gateway_event(event)
    if processed.tasks:
        background_tasks.add_task(run_post_tasks, processed.tasks)

    if processed.outcome == DeliveryOutcome.FAILED:
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    reason = processed.result.reason if processed.result is not None else None
    return WebhookResponse(status=processed.outcome.value, reason=reason)


# ---------------------------------------------------------------------------
# Admin Router
# ---------------------------------------------------------------------------
admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        raise_on_failure=body.raise_on_failure,
    )
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
        raise_on_failure=gateway.raise_on_failure,
    )
