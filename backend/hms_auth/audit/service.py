import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..models.Audit import AuditLog, GENESIS_HASH, audit_timestamp

logger = logging.getLogger(__name__)

# Each lost race means another append went through, so this only bounds
# pathological contention
APPEND_ATTEMPTS = 50


def log_event(
    db: Session,
    actor_id: Optional[int],
    action: str,
    details: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Appends a new event to the AuditLog chain.

    The unique previous_hash makes a concurrent append that read the same
    tail fail on commit; it is retried on top of the new tail.
    """
    for attempt in range(1, APPEND_ATTEMPTS + 1):
        last_entry = db.exec(select(AuditLog).order_by(AuditLog.id.desc())).first()
        previous_hash = last_entry.current_hash if last_entry else GENESIS_HASH

        new_log = AuditLog(
            actor_id=actor_id,
            action=action,
            details=details,
            ip_address=ip_address,
            previous_hash=previous_hash,
            current_hash="",  # Placeholder, will be calculated
            timestamp=audit_timestamp(),
        )
        new_log.current_hash = new_log.calculate_hash()

        db.add(new_log)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.debug("Audit append lost the race for the chain tail (attempt %d)", attempt)
            continue

        db.refresh(new_log)
        return new_log

    raise RuntimeError(f"Could not append audit event {action!r} after {APPEND_ATTEMPTS} attempts")


def verify_chain(db: Session) -> tuple[bool, Optional[int], int]:
    """
    Walks the chain in insertion order. Returns (valid, first broken id, entries checked).
    """
    previous_hash = GENESIS_HASH
    entries = db.exec(select(AuditLog).order_by(AuditLog.id.asc())).all()

    for entry in entries:
        if entry.previous_hash != previous_hash or entry.calculate_hash() != entry.current_hash:
            return False, entry.id, len(entries)
        previous_hash = entry.current_hash

    return True, None, len(entries)


def list_events(db: Session, actor_id: Optional[int] = None, limit: int = 100, offset: int = 0) -> list[AuditLog]:
    statement = select(AuditLog)
    if actor_id is not None:
        statement = statement.where(AuditLog.actor_id == actor_id)
    return db.exec(statement.order_by(AuditLog.id.asc()).offset(offset).limit(limit)).all()
