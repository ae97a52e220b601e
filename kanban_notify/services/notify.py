"""Entry point used by task mutations to announce a change."""

from sqlmodel import Session

from kanban_notify.events.bus import EventBus
from kanban_notify.events.ledger import EventLedger
from kanban_notify.events.types import BoardEvent


def record_and_publish(
    session: Session,
    ledger: EventLedger,
    bus: EventBus,
    event: BoardEvent,
    subject_id: str,
    actor: str,
) -> int:
    """Append the event to the ledger, then publish it. Returns the seq.

    A ledger failure raises ``LedgerAppendError`` before anything is
    published; publishing itself never raises for delivery problems.
    """
    seq = ledger.append(session, ledger.build_record(event, subject_id, actor))
    bus.publish(event)
    return seq
