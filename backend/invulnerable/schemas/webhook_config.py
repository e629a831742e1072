"""Webhook configuration schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invulnerable.constants import DEFAULT_MIN_SEVERITY, TRANSITION_ARROW, WebhookFormat


class WebhookConfigUpdate(BaseModel):
    """Body of PUT /api/v1/webhook-configs/{namespace}/{name}."""

    webhook_url: str = Field(..., min_length=1, max_length=2048)
    webhook_format: WebhookFormat = WebhookFormat.SLACK
    scan_min_severity: str = DEFAULT_MIN_SEVERITY
    scan_only_fixable: bool = False
    status_change_enabled: bool = False
    status_change_min_severity: str = DEFAULT_MIN_SEVERITY
    status_change_only_fixable: bool = False
    status_change_transitions: list[str] = Field(default_factory=list)
    status_change_include_notes: bool = False

    @field_validator("status_change_transitions")
    @classmethod
    def validate_transitions(cls, v: list[str]) -> list[str]:
        """Transitions must look like ``old→new``."""
        for transition in v:
            old, sep, new = transition.partition(TRANSITION_ARROW)
            if not sep or not old or not new:
                raise ValueError(f"transition must be formatted old{TRANSITION_ARROW}new: {transition}")
        return v


class WebhookConfigResponse(WebhookConfigUpdate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    namespace: str
    name: str
    webhook_format: str
    created_at: datetime
    updated_at: datetime
