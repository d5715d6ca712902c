"""Pydantic schema for actions proposed by the decision oracle."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from nurture.core.enums import SEND_ACTIONS, ActionType, Channel, Confidence, LinkKind

# Action names emitted by older prompt versions.
LEGACY_ACTIONS: dict[str, tuple[ActionType, LinkKind | None]] = {
    "send_sms": (ActionType.SEND_MESSAGE, None),
    "send_email": (ActionType.SEND_MESSAGE, None),
    "send_booking_link": (ActionType.SEND_TEMPLATED_LINK, LinkKind.BOOKING),
    "send_application_link": (ActionType.SEND_TEMPLATED_LINK, LinkKind.APPLICATION),
}


class ProposedAction(BaseModel):
    """Advisory proposal; never executed before the guardrails accept it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: ActionType
    message: str | None = None
    link_kind: LinkKind | None = Field(default=None, validation_alias=AliasChoices("link_kind", "linkKind"))
    channel: Channel = Channel.SMS
    wait_hours: float | None = Field(
        default=None,
        gt=0,
        le=24 * 30,
        validation_alias=AliasChoices("wait_hours", "waitHours"),
    )
    confidence: Confidence = Confidence.MEDIUM
    thinking: str = Field(default="", max_length=4000)
    suggested_action: str | None = Field(
        default=None,
        validation_alias=AliasChoices("suggested_action", "suggestedAction"),
    )
    next_check_condition: str | None = Field(
        default=None,
        validation_alias=AliasChoices("next_check_condition", "nextCheckCondition"),
    )

    @model_validator(mode="before")
    @classmethod
    def normalize_legacy_action(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        raw_action = data.get("action")
        if isinstance(raw_action, str) and not isinstance(raw_action, ActionType):
            raw_action = raw_action.strip().lower()
            data["action"] = raw_action
        if raw_action in LEGACY_ACTIONS:
            action, link_kind = LEGACY_ACTIONS[raw_action]
            data["action"] = action.value
            if link_kind is not None and not (data.get("link_kind") or data.get("linkKind")):
                data["link_kind"] = link_kind.value
            if raw_action == "send_email" and "channel" not in data:
                data["channel"] = Channel.EMAIL.value
        if isinstance(data.get("channel"), str):
            data["channel"] = data["channel"].upper()
        if data.get("action") == ActionType.SEND_TEMPLATED_LINK.value and not (
            data.get("link_kind") or data.get("linkKind")
        ):
            data["link_kind"] = LinkKind.BOOKING.value
        return data

    @property
    def is_send(self) -> bool:
        return self.action in SEND_ACTIONS

    @property
    def proposes_booking(self) -> bool:
        return self.action == ActionType.SEND_TEMPLATED_LINK and self.link_kind == LinkKind.BOOKING


def parse_proposed_action(payload: str) -> ProposedAction:
    """Validate a JSON payload against `ProposedAction`."""
    try:
        return ProposedAction.model_validate_json(payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
