"""
Централизованный сервис paywall и watermark (внутренняя библиотека).
Decision (access) и запись списания (ledger) разделены: решение оптимистичное,
ledger - источник истины о списанных one-time покупках.
"""
from app.paywall.access import effective_plan, resolve_access
from app.paywall.audit import record_consumption
from app.paywall.claims import claim_grants_access, extract_one_time_claim
from app.paywall.ledger import CreditLedger
from app.paywall.models import (
    AccessDecision,
    AuthContext,
    ConsumptionResult,
    OneTimeClaim,
    UserAccessRecord,
)
from app.paywall.watermark import apply_watermark_if_needed

__all__ = [
    "AccessDecision",
    "AuthContext",
    "ConsumptionResult",
    "CreditLedger",
    "OneTimeClaim",
    "UserAccessRecord",
    "apply_watermark_if_needed",
    "claim_grants_access",
    "effective_plan",
    "extract_one_time_claim",
    "record_consumption",
    "resolve_access",
]
