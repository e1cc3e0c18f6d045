from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from shopchat.db.session import Base, utcnow


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    # External session identifier (UUID); ties turns to a chat session
    session_id = Column(String(36), unique=True, index=True, nullable=False)
    # active | ended | archived
    status = Column(String, default="active", nullable=False)
    # Derived from messages, recomputed on every append
    message_count = Column(Integer, default=0, nullable=False)
    last_message_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    messages = relationship("Message", back_populates="conversation", order_by="Message.id")
