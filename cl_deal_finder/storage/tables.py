"""SQLAlchemy ORM tables for users, saved searches and evaluated listings."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String(254), nullable=False, unique=True)
    name = Column(String(200))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    searches = relationship(
        "SearchRow", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )


class SearchRow(Base):
    __tablename__ = "searches"

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    query = Column(Text, nullable=False)
    zipcode = Column(String(10), nullable=False)
    min_price = Column(Integer)
    max_price = Column(Integer)
    radius = Column(Integer)
    preferences = Column(JSON)
    is_active = Column(Boolean, default=True, nullable=False)
    last_checked = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    user = relationship("UserRow", back_populates="searches")
    listings = relationship(
        "ListingRow", back_populates="search", cascade="all, delete-orphan", passive_deletes=True
    )


class ListingRow(Base):
    __tablename__ = "listings"
    __table_args__ = (
        UniqueConstraint("search_id", "external_id", name="uq_listings_search_external"),
    )

    id = Column(String(32), primary_key=True, default=_new_id)
    search_id = Column(
        String(32), ForeignKey("searches.id", ondelete="CASCADE"), nullable=False
    )
    external_id = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    price = Column(Integer)
    url = Column(Text, nullable=False)
    description = Column(Text)
    image_url = Column(Text)
    location = Column(Text)
    posted_at = Column(DateTime(timezone=True))
    deal_score = Column(Integer)
    deal_reason = Column(Text)
    is_good_deal = Column(Boolean, default=False, nullable=False)
    alert_sent = Column(Boolean, default=False, nullable=False)
    identified_product = Column(Text)
    retail_price_low = Column(Integer)
    retail_price_high = Column(Integer)
    condition = Column(String(20))
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    search = relationship("SearchRow", back_populates="listings")


Index("idx_searches_active", SearchRow.is_active)
Index("idx_listings_good_unsent", ListingRow.search_id, ListingRow.is_good_deal, ListingRow.alert_sent)
