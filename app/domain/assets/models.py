from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Float, Index, Integer, String, Text

from app.core.database import Base


class Asset(Base):
    """Net-worth asset (investment, property, vehicle, cash reserve)."""

    __tablename__ = "assets"
    __table_args__ = (
        Index("ix_assets_user_category", "user_id", "category"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String(30), nullable=False, default="outros")
    subcategory = Column(String, nullable=True)
    current_value = Column(Float, nullable=False)
    acquisition_value = Column(Float, nullable=True)
    acquisition_date = Column(Date, nullable=True)
    institution = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
