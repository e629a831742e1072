"""Notification policy, payload rendering and webhook delivery."""

from invulnerable.services.notifications.base import (
    NotificationDecision,
    NotificationOutcome,
    SeverityCounts,
    StatusChangeDetails,
)
from invulnerable.services.notifications.policy import (
    NotificationPolicyEvaluator,
    ScanCompletionPolicy,
    StatusChangePolicy,
)
from invulnerable.services.notifications.webhook import WebhookClient

__all__ = [
    "NotificationDecision",
    "NotificationOutcome",
    "NotificationPolicyEvaluator",
    "ScanCompletionPolicy",
    "SeverityCounts",
    "StatusChangeDetails",
    "StatusChangePolicy",
    "WebhookClient",
]
