"""
Event model with seat inventory tracking.

Key design decisions:
- `available_seats` is denormalized (avoids COUNT/SUM over bookings) and is
  written only through the inventory ledger
- CHECK constraints keep 0 <= available_seats <= total_seats even if a writer
  slips past the application
- `version` is bumped by every write to the row; the ledger's conditional
  UPDATE and SQLAlchemy's version_id_col both check it
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, Numeric, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from ticketing.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    img = Column(String(1024), nullable=True)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    creator = relationship("User", back_populates="events")
    # Deletes are refused while bookings exist, so the collection is never loaded for it
    bookings = relationship("Booking", back_populates="event", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("total_seats >= 0", name="check_total_seats_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="check_available_lte_total"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_events_date", "date"),
        Index("ix_events_location", "location"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, available={self.available_seats}/{self.total_seats})>"
