"""
Heuristic layer: multilingual keyword scoring with structural bonuses.

Text = workflow name + node names + every string value in the outputs,
lower-cased. Each keyword found adds one point to its category. Confidence
is score / HEURISTIC_SCORE_DIVISOR capped at HEURISTIC_CEILING; the winner
must reach HEURISTIC_ACCEPT_MIN.

Ties go to the category declared first in CATEGORY_ORDER.
"""

from __future__ import annotations

from flowq.observability.confidence import (
    HEURISTIC_ACCEPT_MIN,
    HEURISTIC_CEILING,
    HEURISTIC_SCORE_DIVISOR,
)
from flowq.observability.logging import get_logger
from flowq.outcomes.evidence import (
    EMAIL_FIELDS,
    PHONE_FIELDS,
    START_TIME_FIELDS,
    STATUS_FIELDS,
    as_text,
    first_present,
)
from flowq.outcomes.layers.base import ClassificationContext
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey

logger = get_logger(__name__)

# English + Traditional Chinese
KEYWORDS: dict[str, tuple[str, ...]] = {
    "meeting": (
        "meeting", "appointment", "calendar", "booked", "booking", "reservation",
        "confirmed", "viewing", "inspection", "demo", "consultation", "schedule", "visit",
        "會議", "預約", "預定", "看房", "參觀", "安排", "諮詢", "約見",
    ),
    "lead": (
        "lead", "prospect", "contact", "inquiry", "signup", "form", "submission",
        "表單", "詢問", "線索", "名單", "潛在客戶", "聯絡人", "註冊",
    ),
    "ticket": (
        "ticket", "issue", "case", "support", "problem", "bug", "request",
        "工單", "問題", "客訴", "支持", "故障", "請求",
    ),
    "email": (
        "email", "mail", "send", "sent", "message", "notification",
        "郵件", "電郵", "發送", "訊息", "通知",
    ),
    "deal": (
        "deal", "sale", "sold", "closed", "won", "purchase", "contract",
        "交易", "銷售", "成交", "簽約", "購買", "合約",
    ),
}

CATEGORY_ORDER = ("meeting", "lead", "ticket", "email", "deal")

CATEGORY_METRICS = {
    "meeting": MetricKey.MEETING_BOOKED,
    "lead": MetricKey.LEAD_CREATED,
    "ticket": MetricKey.TICKET_CREATED,
    "email": MetricKey.EMAIL_SENT,
    "deal": MetricKey.DEAL_WON,
}


def score_categories(context: ClassificationContext) -> dict[str, int]:
    evidence = context.evidence

    texts = [context.workflow.name.lower()]
    texts.extend(name.lower() for name in evidence.node_names)
    texts.extend(value.lower() for value in evidence.string_values())
    combined_text = " ".join(texts)
    combined_keys = " ".join(evidence.all_keys()).lower()

    has_email = has_phone = has_start_time = has_status = False
    for item in evidence.iter_items():
        has_email = has_email or first_present(item, *EMAIL_FIELDS) is not None
        has_phone = has_phone or first_present(item, *PHONE_FIELDS) is not None
        has_start_time = has_start_time or first_present(item, *START_TIME_FIELDS) is not None
        has_status = has_status or first_present(item, *STATUS_FIELDS) is not None

    scores = {
        category: sum(1 for keyword in keywords if keyword.lower() in combined_text)
        for category, keywords in KEYWORDS.items()
    }

    if has_start_time:
        scores["meeting"] += 3
    if "attendees" in combined_keys or "calendar" in combined_keys:
        scores["meeting"] += 2

    if has_email and has_phone:
        scores["lead"] += 4
    elif has_email or has_phone:
        scores["lead"] += 2

    if has_status:
        scores["ticket"] += 2

    return scores


def _ticket_status(context: ClassificationContext) -> str | None:
    for item in context.evidence.iter_items():
        status = as_text(first_present(item, *STATUS_FIELDS))
        if status:
            return status
    return None


class HeuristicLayer:
    name = "heuristic"

    def attempt(self, context: ClassificationContext) -> ClassificationResult | None:
        if context.evidence.is_empty:
            return None

        scores = score_categories(context)
        best = max(CATEGORY_ORDER, key=lambda category: (scores[category], -CATEGORY_ORDER.index(category)))
        top_score = scores[best]
        if top_score == 0:
            return None

        confidence = min(top_score / HEURISTIC_SCORE_DIVISOR, HEURISTIC_CEILING)
        logger.debug("Heuristic scores %s -> %s (%.2f)", scores, best, confidence)
        if confidence < HEURISTIC_ACCEPT_MIN:
            return None

        metric_key = CATEGORY_METRICS[best]
        status = None
        if best == "ticket":
            status = _ticket_status(context)
            lowered = (status or "").lower()
            if "closed" in lowered or "resolved" in lowered:
                metric_key = MetricKey.TICKET_RESOLVED

        return ClassificationResult(
            metric_key=metric_key,
            confidence=confidence,
            detection_layer=DetectionLayer.HEURISTIC,
            metadata=context.base_metadata(status=status),
        )
