"""Subscription handshake and change-notification dispatch.

Every webhook delivery goes through the same steps:

1. Parse the body into an ordered batch of events (a body that is not a
   batch of event objects is malformed as a whole).
2. Classify each event independently (``classify_event`` is pure).
3. Start one background refresh per secret-change event.
4. Pick the single HTTP response for the delivery.

Response precedence: a validated handshake wins, then a rejected handshake,
then a fully malformed batch; anything else is acknowledged.
"""

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from secretcache.errors import MalformedPayloadError
from secretcache.events import (
    HEADER_NOTIFICATION,
    HEADER_SUBSCRIPTION_VALIDATION,
    SECRET_NEW_VERSION_CREATED,
    SUBSCRIPTION_VALIDATION_EVENT,
    InboundEvent,
    parse_delivery,
)
from secretcache.logging_utils import log_error, log_info, log_warning
from secretcache.mirror import VaultMirror, validate_secret_name

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    """What the protocol decided to do with one event."""

    VALIDATED = "validated"
    REJECTED = "rejected"
    DISPATCH = "dispatch"
    IGNORED = "ignored"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class EventDecision:
    """Classification of one event in a delivery."""

    decision: Decision
    event_type: str | None = None
    validation_code: str | None = None
    secret_name: str | None = None
    reason: str | None = None


@dataclass
class DispatchResult:
    """Outcome of one delivery: the response to send and the work started."""

    status_code: int
    body: dict[str, Any]
    decisions: list[EventDecision] = field(default_factory=list)
    refreshes: list[Future] = field(default_factory=list)


def _classify_validation(event: InboundEvent) -> EventDecision:
    if event.event_type != SUBSCRIPTION_VALIDATION_EVENT:
        return EventDecision(
            Decision.REJECTED,
            event_type=event.event_type,
            reason="unexpected event type for subscription validation",
        )
    code = event.validation_code
    if code is None:
        return EventDecision(
            Decision.REJECTED, event_type=event.event_type, reason="missing validationCode"
        )
    return EventDecision(Decision.VALIDATED, event_type=event.event_type, validation_code=code)


def _classify_notification(event: InboundEvent) -> EventDecision:
    if event.event_type != SECRET_NEW_VERSION_CREATED:
        return EventDecision(
            Decision.IGNORED, event_type=event.event_type, reason="unhandled event type"
        )
    name = event.object_name
    if name is None:
        return EventDecision(
            Decision.MALFORMED, event_type=event.event_type, reason="missing objectName"
        )
    try:
        validate_secret_name(name)
    except ValueError as e:
        return EventDecision(Decision.MALFORMED, event_type=event.event_type, reason=str(e))
    return EventDecision(Decision.DISPATCH, event_type=event.event_type, secret_name=name)


def classify_event(event: InboundEvent) -> EventDecision:
    """Decide what to do with one event.

    The delivery header selects the rules. Without a header, the event's own
    type selects them, so a mixed batch is still handled deterministically.

    Args:
        event: Parsed event, tagged with its delivery header

    Returns:
        The decision for this event (no side effects)
    """
    kind = event.header_kind
    if kind is None:
        if event.event_type == SUBSCRIPTION_VALIDATION_EVENT:
            kind = HEADER_SUBSCRIPTION_VALIDATION
        else:
            kind = HEADER_NOTIFICATION

    if kind == HEADER_SUBSCRIPTION_VALIDATION:
        return _classify_validation(event)
    if kind == HEADER_NOTIFICATION:
        return _classify_notification(event)
    return EventDecision(
        Decision.IGNORED, event_type=event.event_type, reason=f"unknown delivery kind {kind!r}"
    )


def build_response(decisions: list[EventDecision]) -> tuple[int, dict[str, Any]]:
    """Pick the single response for a classified delivery.

    Args:
        decisions: Per-event decisions, in delivery order

    Returns:
        (HTTP status code, JSON body)
    """
    for decision in decisions:
        if decision.decision is Decision.VALIDATED:
            return 200, {"validationResponse": decision.validation_code}

    rejected = [d for d in decisions if d.decision is Decision.REJECTED]
    if rejected:
        return 400, {
            "error": "validation_rejected",
            "message": f"Subscription validation rejected: {rejected[0].reason}",
        }

    if decisions and all(d.decision is Decision.MALFORMED for d in decisions):
        return 400, {
            "error": "malformed_payload",
            "message": f"No usable events in delivery: {decisions[0].reason}",
        }

    counts = {kind: 0 for kind in (Decision.DISPATCH, Decision.IGNORED, Decision.MALFORMED)}
    for decision in decisions:
        counts[decision.decision] += 1
    return 200, {
        "status": "accepted",
        "dispatched": counts[Decision.DISPATCH],
        "ignored": counts[Decision.IGNORED],
        "malformed": counts[Decision.MALFORMED],
    }


def dispatch_delivery(
    body: bytes | str,
    header_kind: str | None,
    mirror: VaultMirror,
) -> DispatchResult:
    """Run one webhook delivery through the handshake and dispatch protocol.

    Secret refreshes are only started here; the caller can respond without
    waiting for them. Their futures are returned in the result.

    Args:
        body: Raw request body
        header_kind: Value of the Aeg-Event-Type header, if any
        mirror: Cache to refresh

    Returns:
        DispatchResult with the response to send
    """
    try:
        events = parse_delivery(body, header_kind)
    except MalformedPayloadError as e:
        log_warning(logger, "Malformed webhook delivery", error=e)
        mirror.metrics.record_dispatch(Decision.MALFORMED.value)
        return DispatchResult(400, {"error": "malformed_payload", "message": str(e)})

    decisions = []
    refreshes = []
    for event in events:
        decision = classify_event(event)
        decisions.append(decision)
        mirror.metrics.record_dispatch(decision.decision.value)

        if decision.decision is Decision.DISPATCH:
            try:
                refreshes.append(mirror.schedule_refresh(decision.secret_name))
            except RuntimeError as e:
                # Executor already shut down
                log_error(
                    logger, "Could not schedule refresh", secret=decision.secret_name, error=e
                )
                continue
            log_info(logger, "Refresh scheduled", secret=decision.secret_name, event_id=event.id)
        elif decision.decision is Decision.VALIDATED:
            log_info(logger, "Subscription validation handshake", topic=event.topic)
        elif decision.decision is Decision.IGNORED:
            log_info(
                logger, "Ignoring event", event_type=event.event_type, reason=decision.reason
            )
        else:
            log_warning(
                logger,
                "Unusable event",
                decision=decision.decision.value,
                event_type=event.event_type,
                reason=decision.reason,
            )

    status_code, response_body = build_response(decisions)
    return DispatchResult(status_code, response_body, decisions, refreshes)
