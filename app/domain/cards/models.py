from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    Index,
)

from app.core.database import Base


class CreditCard(Base):
    __tablename__ = "credit_cards"
    __table_args__ = (
        Index("ix_credit_cards_user_last_four", "user_id", "last_four_digits"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    last_four_digits = Column(String(4), nullable=True)
    credit_limit = Column(Float, nullable=True)
    closing_day = Column(Integer, nullable=True)  # 1-28 typically
    due_day = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
