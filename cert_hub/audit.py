"""
Append-only audit log.

Callers append inside their own ``transaction.atomic`` block so the event and
the state transition it describes commit or roll back together.
"""

import structlog

from cert_hub.models import AuditEvent

logger = structlog.get_logger()

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


def append_event(kind, subject_ref, actor="", detail=None, using="default"):
    # type: (str, str, str, dict|None, str) -> AuditEvent
    """
    Append one audit event.

    :param kind: One of ``AuditEvent.Kind``
    :param subject_ref: Content hash, wallet or request id the event is about
    :param actor: Who triggered the transition (wallet, "admin", "reconciler")
    :param detail: JSON-serializable context, must never contain raw identity numbers
    :param using: Database alias
    :return: The stored event
    """
    event = AuditEvent.objects.using(using).create(
        kind=kind,
        subject_ref=str(subject_ref),
        actor=actor or "",
        detail=detail or {},
    )
    logger.info("audit_event_appended", seq=event.seq, kind=kind, subject_ref=str(subject_ref), actor=actor)
    return event


def list_events(limit=DEFAULT_LIMIT, kind=None, subject_ref=None, using="default"):
    # type: (int, str|None, str|None, str) -> list[AuditEvent]
    """
    Return the newest audit events first.

    :param limit: Maximum number of events, clamped to ``MAX_LIMIT``
    :param kind: Optional event kind filter
    :param subject_ref: Optional subject filter
    :param using: Database alias
    """
    limit = max(1, min(int(limit), MAX_LIMIT))
    queryset = AuditEvent.objects.using(using).all()
    if kind:
        queryset = queryset.filter(kind=kind)
    if subject_ref:
        queryset = queryset.filter(subject_ref=subject_ref)
    return list(queryset.order_by("-seq")[:limit])
