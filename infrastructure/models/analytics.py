"""
Analytics event and processed-key ORM models.
"""
from sqlalchemy import Column, DateTime, Index, Integer, JSON, Numeric, String
from datetime import datetime, timezone

from .base import Base


class AnalyticsEventModel(Base):
    __tablename__ = "analytics_events"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False)
    entity_id = Column(String(64), nullable=False, index=True)
    user_id = Column(String(64), nullable=True)
    revenue = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    extra_metadata = Column("metadata", JSON, nullable=True)
    timestamp = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_analytics_type_timestamp", "event_type", "timestamp"),
    )


class ProcessedKeyModel(Base):
    """Keys of webhook events and recharges that were already applied."""
    __tablename__ = "processed_keys"

    id = Column(Integer, primary_key=True)
    key = Column(String(200), unique=True, nullable=False)
    scope = Column(String(50), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
