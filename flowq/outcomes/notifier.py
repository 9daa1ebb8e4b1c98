"""
Review notifier: explains a low-confidence classification to a human and
asks for confirmation.

One notification per execution. The push fan-out happens only when a new
notification row was inserted, and its failure never touches the row.
"""

from __future__ import annotations

from flowq.config import NOTIFICATION_NODE_DISPLAY_CAP
from flowq.observability.confidence import NOTIFICATION_HIGH_PRIORITY_BELOW
from flowq.observability.logging import get_logger
from flowq.observability.telemetry import counter, log_event
from flowq.outcomes.dispatch import NotificationDispatcher
from flowq.outcomes.models import ClassificationResult, DetectionLayer, MetricKey
from flowq.storage.notifications import NotificationRepository

logger = get_logger(__name__)

KNOWN_ACTIVITIES = (
    "Meetings booked",
    "Leads created",
    "Tickets created/resolved",
    "Emails sent",
    "Deals won",
)


def notification_priority(confidence: float) -> str:
    return "high" if confidence < NOTIFICATION_HIGH_PRIORITY_BELOW else "medium"


def notification_title(workflow_name: str | None) -> str:
    return f'Need help understanding "{workflow_name or "this workflow"}"'


def _steps_section(node_names: list[str], cap: int = NOTIFICATION_NODE_DISPLAY_CAP) -> str:
    if not node_names:
        return ""
    lines = ["What happened:"]
    lines.extend(f"• {node}" for node in node_names[:cap])
    if len(node_names) > cap:
        lines.append(f"• ...and {len(node_names) - cap} more steps")
    return "\n".join(lines) + "\n\n"


def render_review_message(result: ClassificationResult) -> str:
    meta = result.metadata
    label = result.metric_key.label
    percent = round(result.confidence * 100)
    steps = _steps_section(meta.node_names)

    if result.metric_key == MetricKey.UNKNOWN:
        activities = "\n".join(f"• {activity}" for activity in KNOWN_ACTIVITIES)
        return (
            "We couldn't identify what this workflow tracks.\n\n"
            f"{steps}"
            f"This doesn't match known business activities like:\n{activities}\n\n"
            "Please tell us what this workflow should track."
        )

    if result.detection_layer == DetectionLayer.VECTOR_SEMANTIC:
        similarity = round((meta.vector_similarity or result.confidence) * 100)
        return (
            f'This workflow looks similar to "{meta.matched_description or "a known pattern"}" '
            f'({similarity}% match), suggesting it tracks "{label}".\n\n'
            f"{steps}"
            "Please confirm if this is correct."
        )

    if result.detection_layer == DetectionLayer.HEURISTIC:
        return (
            f'Keywords suggest this workflow tracks "{label}" ({percent}% confident).\n\n'
            f"{steps}"
            "Please confirm if this looks correct."
        )

    if result.detection_layer == DetectionLayer.AI:
        reasoning = meta.reasoning or "the workflow steps and data"
        return (
            f'We analyzed this workflow and think it might be tracking "{label}" '
            f"({percent}% confident).\n\n"
            f"Why: {reasoning}\n\n"
            f"{steps}"
            "Does this look correct? If not, please tell us what this workflow should track."
        )

    return (
        f'This workflow appears to track "{label}" ({percent}% confident).\n\n'
        f"{steps}"
        "Please confirm if this is correct."
    )


class ReviewNotifier:
    def __init__(
        self,
        dispatcher: NotificationDispatcher | None = None,
        notifications=NotificationRepository,
    ):
        self.dispatcher = dispatcher if dispatcher is not None else NotificationDispatcher()
        self.notifications = notifications

    def notify(
        self,
        result: ClassificationResult,
        company_id: str,
        workflow_id: str,
        execution_id: str,
    ) -> int | None:
        """
        Persist a pending review notification and fan it out.

        Returns:
            New notification id, or None if the execution already had one
        """
        if self.notifications.exists_for_execution(company_id, execution_id):
            counter("notifications.duplicate")
            logger.info("Notification already exists for execution %s", execution_id)
            return None

        title = notification_title(result.metadata.workflow_name)
        message = render_review_message(result)
        priority = notification_priority(result.confidence)

        notification_id = self.notifications.create(
            company_id,
            result,
            workflow_id=workflow_id,
            execution_id=execution_id,
            title=title,
            message=message,
            priority=priority,
        )
        if notification_id is None:
            counter("notifications.duplicate")
            return None

        counter("notifications.created")
        log_event(
            "notification.created",
            notification_id=notification_id,
            execution_id=execution_id,
            suggested=result.metric_key.value,
            priority=priority,
        )

        try:
            self.dispatcher.dispatch(company_id, title, message, severity=priority)
        except Exception as e:
            logger.warning("Push fan-out raised for notification %s: %s", notification_id, e)

        return notification_id
