"""Inbound webhook events (Event Grid schema).

A delivery is either a single event object or a JSON array of event objects.
Parsing only checks the envelope shape; deciding what an event means is left
to the dispatch protocol.
"""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from secretcache.errors import MalformedPayloadError

# Values of the Aeg-Event-Type delivery header
HEADER_SUBSCRIPTION_VALIDATION = "SubscriptionValidation"
HEADER_NOTIFICATION = "Notification"

SUBSCRIPTION_VALIDATION_EVENT = "Microsoft.EventGrid.SubscriptionValidationEvent"
SECRET_NEW_VERSION_CREATED = "Microsoft.KeyVault.SecretNewVersionCreated"


class InboundEvent(BaseModel):
    """One event of a webhook delivery."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    header_kind: str | None = None
    id: str | None = None
    topic: str | None = None
    subject: str | None = None
    event_type: str = Field(..., alias="eventType")
    event_time: str | None = Field(default=None, alias="eventTime")
    data: dict[str, Any]

    @property
    def validation_code(self) -> str | None:
        """Handshake challenge code, if present."""
        code = self.data.get("validationCode")
        return code if isinstance(code, str) and code else None

    @property
    def object_name(self) -> str | None:
        """Name of the secret an event refers to, if present.

        Key Vault publishes "ObjectName"; "objectName" is accepted too.
        """
        name = self.data.get("ObjectName", self.data.get("objectName"))
        return name if isinstance(name, str) and name else None


def parse_delivery(body: bytes | str, header_kind: str | None = None) -> list[InboundEvent]:
    """Parse a webhook delivery body into its ordered events.

    Args:
        body: Raw request body
        header_kind: Value of the Aeg-Event-Type header, if any

    Returns:
        Events in delivery order, each tagged with header_kind

    Raises:
        MalformedPayloadError: If the body is empty, not JSON, an empty
            array, or contains an element that is not an event object
    """
    if not body or not body.strip():
        raise MalformedPayloadError("Empty request body")

    try:
        payload = json.loads(body)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedPayloadError(f"Invalid JSON payload: {e}") from e

    items = payload if isinstance(payload, list) else [payload]
    if not items:
        raise MalformedPayloadError("Empty event batch")

    events = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise MalformedPayloadError(f"Event {index} is not an object")
        try:
            event = InboundEvent.model_validate(item)
        except ValidationError as e:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise MalformedPayloadError(f"Event {index} is invalid ({fields})") from e
        event.header_kind = header_kind
        events.append(event)

    return events
