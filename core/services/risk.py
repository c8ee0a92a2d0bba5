"""
Order risk scoring at creation.

Observational only: the score is stored on the order and surfaced in the admin
risk review, it never blocks a purchase. Reasons are codes, never PII.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Optional

from core.logging import get_logger

logger = get_logger(__name__)

MAX_STRING_LEN = 255

# Heuristic points (no DB)
MISSING_IP_POINTS = 30
MISSING_UA_POINTS = 20
MISSING_STATE_POINTS = 15
MISSING_CEP_POINTS = 10
MISSING_CPF_POINTS = 15
UA_MIN_LEN = 10

# Velocity points (DB counts)
IP_BURST_WINDOW = timedelta(minutes=10)
IP_BURST_THRESHOLD = 3
IP_BURST_POINTS = 20
EMAIL_FAIL_WINDOW = timedelta(hours=24)
EMAIL_FAIL_THRESHOLD = 2
EMAIL_FAIL_POINTS = 20
ADDRESS_SANITY_POINTS = 10

RISK_FLAG_THRESHOLD = 60
RISK_SCORE_MAX = 100


@dataclass
class RiskInput:
    ip_address: Optional[str]
    user_agent: Optional[str]
    email: Optional[str]
    cpf: Optional[str] = None
    cep: Optional[str] = None
    state: Optional[str] = None


@dataclass
class RiskAssessment:
    score: int = 0
    flagged: bool = False
    reasons: list[str] = field(default_factory=list)


def truncate_for_db(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value[:MAX_STRING_LEN] or None


def _blank(value: Optional[str]) -> bool:
    return not (value or "").strip()


def heuristic_risk(data: RiskInput) -> tuple[int, list[str]]:
    """Points for missing request and payer signals."""
    score = 0
    reasons = []
    if _blank(data.ip_address):
        score += MISSING_IP_POINTS
        reasons.append("MISSING_IP")
    if len((data.user_agent or "").strip()) < UA_MIN_LEN:
        score += MISSING_UA_POINTS
        reasons.append("MISSING_UA")
    if _blank(data.state):
        score += MISSING_STATE_POINTS
        reasons.append("MISSING_STATE")
    if _blank(data.cep):
        score += MISSING_CEP_POINTS
        reasons.append("MISSING_CEP")
    if _blank(data.cpf):
        score += MISSING_CPF_POINTS
        reasons.append("MISSING_CPF")
    return score, reasons


def address_looks_malformed(cep: Optional[str], state: Optional[str]) -> bool:
    """Format-only check; only judged when both are present."""
    if _blank(cep) or _blank(state):
        return False
    digits = "".join(ch for ch in cep if ch.isdigit())
    return len(digits) < 8 or len(state.strip()) != 2


async def compute_order_risk(db, data: RiskInput, now: Optional[datetime] = None) -> RiskAssessment:
    """
    Score a new order from 0 to 100, flagged at 60.

    Any failure degrades to zero risk; checkout must not depend on this.
    """
    now = now or datetime.now(UTC)
    try:
        score, reasons = heuristic_risk(data)

        if not _blank(data.ip_address):
            recent = await db.orders.count_by_ip_since(data.ip_address.strip(), now - IP_BURST_WINDOW)
            if recent >= IP_BURST_THRESHOLD:
                score += IP_BURST_POINTS
                reasons.append("IP_BURST_10M")

        if not _blank(data.email):
            failures = await db.orders.count_unsuccessful_by_email_since(
                data.email.strip(), now - EMAIL_FAIL_WINDOW
            )
            if failures >= EMAIL_FAIL_THRESHOLD:
                score += EMAIL_FAIL_POINTS
                reasons.append("EMAIL_FAIL_24H")

        if address_looks_malformed(data.cep, data.state):
            score += ADDRESS_SANITY_POINTS
            reasons.append("ADDRESS_SANITY")

        score = min(RISK_SCORE_MAX, max(0, score))
        return RiskAssessment(score=score, flagged=score >= RISK_FLAG_THRESHOLD, reasons=reasons)
    except Exception as e:
        logger.warning(f"Risk scoring failed, storing zero risk: {type(e).__name__}: {e}")
        return RiskAssessment()
