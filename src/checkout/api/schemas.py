"""Pydantic response and request schemas for the webhook API.

These are external contracts, separate from the internal Protean commands.
"""

from pydantic import BaseModel


class WebhookResponse(BaseModel):
    received: bool = True
    status: str
    reason: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"received": True, "status": "processed"},
                {"received": True, "status": "duplicate"},
            ]
        }
    }


class WebhookErrorResponse(BaseModel):
    error: str


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Refund declined"
    raise_on_failure: bool = False


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
    raise_on_failure: bool
