import asyncio
import logging
from typing import Callable, Dict, FrozenSet, List, Optional

from sqlalchemy import case, select
from sqlalchemy.orm import Session

import shopchat.config.config as configs
from shopchat.client.db.psql import session_scope
from shopchat.db.models import Complaint
from shopchat.db.session import utcnow
from shopchat.model.complaint.complaint import ComplaintRecord, CustomerContact
from shopchat.service.chat.validators import normalize_email, normalize_phone, normalize_tags
from shopchat.service.errors import ComplaintNotFound, InvalidStatusTransition

logger = logging.getLogger(__name__)

# resolved and closed are terminal for intake; reopening is handled elsewhere
TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "open": frozenset({"in_progress", "resolved", "closed"}),
    "in_progress": frozenset({"resolved", "closed"}),
    "resolved": frozenset({"closed"}),
    "closed": frozenset(),
}

PRIORITY_RANK = {"low": 0, "medium": 1, "high": 2, "urgent": 3}


def _transition(row: Complaint, target: str) -> None:
    """Move ``row`` to ``target`` keeping resolved_at tied to the resolved state."""
    current = row.status or "open"
    if target == current:
        return
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransition(current, target)
    row.status = target
    row.resolved_at = utcnow() if target == "resolved" else None


def _to_record(row: Complaint) -> ComplaintRecord:
    return ComplaintRecord(
        id=row.id,
        session_id=row.session_id,
        conversation_id=row.conversation_id,
        summary=row.summary,
        detailed_description=row.detailed_description,
        customer_contact=CustomerContact(email=row.contact_email, phone=row.contact_phone),
        status=row.status,
        priority=row.priority,
        tags=list(row.tags or []),
        assigned_to=row.assigned_to,
        resolution_notes=row.resolution_notes,
        resolved_at=row.resolved_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _write_fields(row: Complaint, record: ComplaintRecord) -> None:
    row.summary = (record.summary or "")[:500] or None
    row.detailed_description = (record.detailed_description or "")[:2000] or None
    row.contact_email = normalize_email(record.customer_contact.email)
    row.contact_phone = normalize_phone(record.customer_contact.phone)
    row.priority = record.priority
    row.tags = normalize_tags(record.tags)
    row.assigned_to = record.assigned_to
    row.resolution_notes = (record.resolution_notes or "")[:1000] or None


class ComplaintStore:
    """Complaint records and their status lifecycle."""

    def __init__(self, session_factory: Optional[Callable[[], Session]] = None):
        self._session_factory = session_factory

    def _get_row(self, db: Session, complaint_id: int) -> Complaint:
        row = db.get(Complaint, complaint_id)
        if row is None:
            raise ComplaintNotFound(f"complaint {complaint_id} not found")
        return row

    def _find_active(self, session_id: str) -> Optional[ComplaintRecord]:
        with session_scope(self._session_factory) as db:
            row = db.execute(
                select(Complaint)
                .where(
                    Complaint.session_id == session_id,
                    Complaint.status.in_(configs.ACTIVE_COMPLAINT_STATUSES),
                )
                .order_by(Complaint.created_at.desc(), Complaint.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            return _to_record(row) if row is not None else None

    def _create(self, record: ComplaintRecord) -> ComplaintRecord:
        with session_scope(self._session_factory) as db:
            row = Complaint(
                session_id=record.session_id,
                conversation_id=record.conversation_id,
                status="open",
                created_at=utcnow(),
            )
            _write_fields(row, record)
            _transition(row, record.status)
            db.add(row)
            db.flush()
            logger.info("complaint created id=%s session=%s status=%s", row.id, row.session_id, row.status)
            return _to_record(row)

    def _save(self, record: ComplaintRecord) -> ComplaintRecord:
        if record.id is None:
            raise ComplaintNotFound("complaint has no id; use create()")
        with session_scope(self._session_factory) as db:
            row = self._get_row(db, record.id)
            _write_fields(row, record)
            _transition(row, record.status)
            row.updated_at = utcnow()
            db.flush()
            return _to_record(row)

    def _get(self, complaint_id: int) -> ComplaintRecord:
        with session_scope(self._session_factory) as db:
            return _to_record(self._get_row(db, complaint_id))

    def _set_status(
        self,
        complaint_id: int,
        target: str,
        assignee: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ComplaintRecord:
        with session_scope(self._session_factory) as db:
            row = self._get_row(db, complaint_id)
            _transition(row, target)
            if assignee:
                row.assigned_to = assignee
            if notes:
                row.resolution_notes = notes[:1000]
            row.updated_at = utcnow()
            db.flush()
            logger.info("complaint id=%s moved to %s", row.id, row.status)
            return _to_record(row)

    def _update_contact(self, complaint_id: int, email: Optional[str], phone: Optional[str]) -> ComplaintRecord:
        valid_email = normalize_email(email) if email else None
        valid_phone = normalize_phone(phone) if phone else None
        if email and valid_email is None:
            raise ValueError(f"invalid email: {email}")
        if phone and valid_phone is None:
            raise ValueError(f"invalid phone: {phone}")
        with session_scope(self._session_factory) as db:
            row = self._get_row(db, complaint_id)
            if valid_email:
                row.contact_email = valid_email
            if valid_phone:
                row.contact_phone = valid_phone
            row.updated_at = utcnow()
            db.flush()
            return _to_record(row)

    def _list_unresolved(self) -> List[ComplaintRecord]:
        rank = case(PRIORITY_RANK, value=Complaint.priority, else_=1)
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Complaint)
                .where(Complaint.status.in_(configs.ACTIVE_COMPLAINT_STATUSES))
                .order_by(rank.desc(), Complaint.created_at.asc(), Complaint.id.asc())
            ).scalars().all()
            return [_to_record(r) for r in rows]

    async def find_active_for_session(self, session_id: str) -> Optional[ComplaintRecord]:
        """Most recent open/in_progress complaint for the session, if any."""
        return await asyncio.to_thread(self._find_active, session_id)

    async def create(self, record: ComplaintRecord) -> ComplaintRecord:
        return await asyncio.to_thread(self._create, record)

    async def save(self, record: ComplaintRecord) -> ComplaintRecord:
        return await asyncio.to_thread(self._save, record)

    async def get(self, complaint_id: int) -> ComplaintRecord:
        return await asyncio.to_thread(self._get, complaint_id)

    async def mark_in_progress(self, complaint_id: int, assignee: Optional[str] = None) -> ComplaintRecord:
        return await asyncio.to_thread(self._set_status, complaint_id, "in_progress", assignee, None)

    async def resolve(self, complaint_id: int, notes: Optional[str] = None) -> ComplaintRecord:
        return await asyncio.to_thread(self._set_status, complaint_id, "resolved", None, notes)

    async def close(self, complaint_id: int, notes: Optional[str] = None) -> ComplaintRecord:
        return await asyncio.to_thread(self._set_status, complaint_id, "closed", None, notes)

    async def update_contact(
        self, complaint_id: int, email: Optional[str] = None, phone: Optional[str] = None
    ) -> ComplaintRecord:
        return await asyncio.to_thread(self._update_contact, complaint_id, email, phone)

    async def list_unresolved(self) -> List[ComplaintRecord]:
        return await asyncio.to_thread(self._list_unresolved)
