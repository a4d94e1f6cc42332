from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Date, DateTime, ForeignKey, Index, UniqueConstraint, Uuid, func
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

class Listing(Base):
    __tablename__ = "listings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(Text, nullable=False)
    source_url = Column(Text, nullable=False)
    title = Column(Text, nullable=False, default="")
    vin = Column(String(17))
    model = Column(Text, nullable=False)
    trim = Column(Text)
    generation = Column(Text, nullable=False, default="")  # "" when unresolved
    model_year = Column(Integer, nullable=False)
    price = Column(Integer, nullable=False)
    mileage = Column(Integer)
    exterior_color = Column(Text)
    interior_color = Column(Text)
    paint_to_sample = Column(Boolean, nullable=False, default=False)
    transmission = Column(Text)  # Manual|PDK|Automatic
    sale_status = Column(Text, nullable=False, default="active")  # active|sold
    sale_date = Column(Date)
    needs_review = Column(Boolean, nullable=False, default=False)
    raw_blob_key = Column(Text)
    discovered_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True))

    warnings = relationship("ResolutionWarning", cascade="all, delete-orphan", back_populates="listing")

    __table_args__ = (
        UniqueConstraint("source", "source_url"),
        Index("ix_listings_vin_status", "vin", "sale_status"),
        Index("ix_listings_model_generation", "model", "generation"),
    )

class QueueItem(Base):
    __tablename__ = "queue_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    source = Column(Text, nullable=False)
    url = Column(Text, nullable=False)
    vin = Column(String(17))  # hint from the index page
    status = Column(Text, nullable=False, default="pending")  # pending|processing|done|error
    error_message = Column(Text)
    outcome = Column(Text)
    attempt_count = Column(Integer, nullable=False, default=0)
    discovered_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    claimed_at = Column(DateTime(timezone=True))
    next_attempt_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("source", "url"),
        Index("ix_queue_items_status_next_attempt", "status", "next_attempt_at"),
    )

class ResolutionWarning(Base):
    __tablename__ = "resolution_warnings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    field = Column(Text, nullable=False)
    kind = Column(Text, nullable=False)  # conflict|rejected|missing|unresolved
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    listing = relationship("Listing", back_populates="warnings")

class PriceEvent(Base):
    __tablename__ = "price_events"
    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(Integer, ForeignKey("listings.id", ondelete="CASCADE"), nullable=False)
    observed_at = Column(DateTime(timezone=True), nullable=False)
    old_price = Column(Integer)
    new_price = Column(Integer)
    delta = Column(Integer)

class IngestionRun(Base):
    __tablename__ = "ingestion_runs"
    id = Column(Uuid(as_uuid=True), primary_key=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))
    status = Column(Text, nullable=False)  # running|success|partial|failed
    processed_count = Column(Integer, default=0)
    written_count = Column(Integer, default=0)
    skipped_count = Column(Integer, default=0)
    failed_count = Column(Integer, default=0)
    retried_count = Column(Integer, default=0)
    notes = Column(Text)
