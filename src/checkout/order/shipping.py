"""Shipping rates offered at checkout, keyed by the gateway's rate id.

The checkout session only tells us which rate the customer picked; method,
carrier and display name are ours.
"""

import json
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ShippingRate:
    name: str
    method: str
    carrier: str


STANDARD = ShippingRate(name="Standard delivery", method="STANDARD", carrier="POSTAL")
EXPRESS = ShippingRate(name="Express delivery", method="EXPRESS", carrier="COURIER")
PICKUP = ShippingRate(name="Store pickup", method="PICKUP", carrier="NONE")

_METHODS = {rate.method: rate for rate in (STANDARD, EXPRESS, PICKUP)}


def _configured_rates() -> dict[str, ShippingRate]:
    """Rate ids from SHIPPING_RATES, a JSON object of {rate_id: method}."""
    raw = os.environ.get("SHIPPING_RATES")
    if not raw:
        return {}
    return {rate_id: _METHODS[method.upper()] for rate_id, method in json.loads(raw).items()}


def shipping_rate_for(rate_id: str | None, display_name: str | None = None) -> ShippingRate:
    """Resolve the picked rate; unknown ids fall back on the display name, then STANDARD."""
    if rate_id:
        configured = _configured_rates().get(rate_id)
        if configured:
            return configured
    label = (display_name or "").lower()
    if "express" in label:
        return EXPRESS
    if "pickup" in label:
        return PICKUP
    return STANDARD


def shipping_from_session(session: dict) -> tuple[int | None, str | None, ShippingRate]:
    """Extract (cost, rate id, rate) from a session fetched with the rate expanded."""
    shipping_cost = session.get("shipping_cost") or {}
    rate = shipping_cost.get("shipping_rate")
    if isinstance(rate, dict):
        rate_id, display_name = rate.get("id"), rate.get("display_name")
    else:
        rate_id, display_name = rate, None

    amount = (session.get("total_details") or {}).get("amount_shipping")
    if amount is None:
        amount = shipping_cost.get("amount_total")
    return amount, rate_id, shipping_rate_for(rate_id, display_name)
