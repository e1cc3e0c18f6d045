from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from shopchat.db.session import Base, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    # Parent conversation row
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    # user | assistant | system
    role = Column(String, nullable=False)
    content = Column(String(10000), nullable=False)
    # Classified intent of the turn, when known
    intent = Column(String, nullable=True)
    # Network info for user turns; model, latency, retrieved products for assistant turns
    meta = Column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
