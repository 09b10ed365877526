from sqlalchemy import (
    Column, String, DateTime, Integer, JSON
)
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime, timezone

from pkg.db_util.sql_alchemy.declarative_base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Conversation Table
class ConversationModel(Base):
    __tablename__ = "conversations"

    # Conversation ids are unique per user, not globally
    user_id = Column(String, primary_key=True)
    id = Column(String, primary_key=True)
    # Whole message list, rewritten on every turn
    messages = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)
    message_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    last_activity = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
