"""Included monthly verifications per billing plan."""

import logging

from akeed.config import settings

logger = logging.getLogger(__name__)

INCLUDED_VERIFICATIONS: dict[str, int] = {
    "starter": 50,
    "growth": 500,
    "pro": 1000,
    "scale": 2500,
}


def resolve_plan_id(raw_plan_id: str | None) -> str:
    plan_id = (raw_plan_id or "").strip().lower()
    if plan_id in INCLUDED_VERIFICATIONS:
        return plan_id
    fallback = settings.default_plan_id
    if fallback not in INCLUDED_VERIFICATIONS:
        fallback = "starter"
    logger.warning(
        "Billing plan %r is missing or unknown; enforcing %s limits",
        raw_plan_id,
        fallback,
    )
    return fallback


def included_limit_for(plan_id: str) -> int:
    return INCLUDED_VERIFICATIONS[resolve_plan_id(plan_id)]
