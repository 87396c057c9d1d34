"""COD eligibility: decides whether an order needs a WhatsApp confirmation.

Each supported storefront platform is bound to a strategy that knows where the
platform puts payment information. Strategies only collect payment signals;
matching them against the COD phrase list is shared.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


class EligibilityReason(str, enum.Enum):
    cod_match = "cod_match"
    non_cod_payment_method = "non_cod_payment_method"
    missing_payment_signal = "missing_payment_signal"
    unsupported_platform = "unsupported_platform"


class Platform(str, enum.Enum):
    shopify = "shopify"


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: EligibilityReason
    matched_signal: str | None = None


# English and Arabic phrasings used by COD gateways.
COD_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bcod\b",
        r"\bcash\s*on\s*delivery\b",
        r"\bcash\s*on\s*receipt\b",
        r"\bcollect\s*on\s*delivery\b",
        r"\bpay\s*on\s*delivery\b",
        r"الدفع\s*عند\s*الاستلام",
        r"كاش\s*عند\s*الاستلام",
    )
)


def normalize_payment_signal(value: str) -> str:
    normalized = value.strip().lower()
    normalized = re.sub(r"[_-]+", " ", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def is_cod_signal(signal: str) -> bool:
    normalized = normalize_payment_signal(signal)
    return any(pattern.search(normalized) for pattern in COD_PATTERNS)


def _push_signal(signals: list[str], value: Any) -> None:
    if not isinstance(value, str):
        return
    normalized = normalize_payment_signal(value)
    if normalized and normalized not in signals:
        signals.append(normalized)


class EligibilityStrategy:
    platform: Platform

    def collect_payment_signals(self, order: Any) -> list[str]:
        raise NotImplementedError

    def evaluate(self, order: Any) -> EligibilityResult:
        signals = self.collect_payment_signals(order)
        if not signals:
            return EligibilityResult(False, EligibilityReason.missing_payment_signal)

        for signal in signals:
            if is_cod_signal(signal):
                return EligibilityResult(True, EligibilityReason.cod_match, signal)

        return EligibilityResult(False, EligibilityReason.non_cod_payment_method)


class ShopifyEligibilityStrategy(EligibilityStrategy):
    platform = Platform.shopify

    def collect_payment_signals(self, order: Any) -> list[str]:
        signals: list[str] = []
        _push_signal(signals, getattr(order, "payment_method", None))

        raw = getattr(order, "raw_payload", None)
        if not isinstance(raw, dict):
            return signals

        gateway_names = raw.get("payment_gateway_names")
        if isinstance(gateway_names, list):
            for gateway_name in gateway_names:
                _push_signal(signals, gateway_name)

        _push_signal(signals, raw.get("gateway"))

        transactions = raw.get("transactions")
        if isinstance(transactions, list):
            for transaction in transactions:
                if isinstance(transaction, dict):
                    _push_signal(signals, transaction.get("gateway"))

        return signals


PLATFORM_STRATEGIES: dict[Platform, EligibilityStrategy] = {
    Platform.shopify: ShopifyEligibilityStrategy(),
}


def resolve_platform(platform_type: str | None) -> Platform | None:
    try:
        return Platform((platform_type or "").strip().lower())
    except ValueError:
        return None


class EligibilityEvaluator:
    def __init__(
        self, strategies: dict[Platform, EligibilityStrategy] | None = None
    ) -> None:
        self._strategies = strategies if strategies is not None else PLATFORM_STRATEGIES

    def evaluate(self, order: Any, integration: Any) -> EligibilityResult:
        platform_type = getattr(integration, "platform_type", None)
        platform = resolve_platform(platform_type)
        strategy = self._strategies.get(platform) if platform else None
        if strategy is None:
            logger.warning(
                "No COD eligibility strategy for platform %r; skipping order %s",
                platform_type,
                getattr(order, "external_order_id", None),
            )
            return EligibilityResult(False, EligibilityReason.unsupported_platform)
        return strategy.evaluate(order)


eligibility_evaluator = EligibilityEvaluator()
