from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import ARRAY

from shopchat.db.session import Base, utcnow


class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), index=True, nullable=False)
    # Parent conversation row; a complaint is derived from one session
    conversation_id = Column(Integer, index=True, nullable=False)
    summary = Column(String(500), nullable=True)
    detailed_description = Column(String(2000), nullable=True)
    contact_email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    # open | in_progress | resolved | closed
    status = Column(String, default="open", nullable=False, index=True)
    # low | medium | high | urgent
    priority = Column(String, default="medium", nullable=False)
    tags = Column(JSON().with_variant(ARRAY(String), "postgresql"), default=list, nullable=False)
    assigned_to = Column(String, nullable=True)
    resolution_notes = Column(String(1000), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
