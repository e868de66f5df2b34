from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Numeric
from app.core.database import Base


class Account(Base):
    """Bank account a transaction can be booked against."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String, nullable=False)
    account_type = Column(String, nullable=False)  # corrente, poupanca, investimento, carteira
    balance = Column(Numeric(12, 2), default=0)
    currency = Column(String, default="BRL")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
