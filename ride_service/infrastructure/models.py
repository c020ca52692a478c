"""
SQLAlchemy ORM models.

Tables
------
* ``drivers``          -- driver profiles (owned by the profile service,
                          read-only here)
* ``driver_presence``  -- line / parking / busy state and last location
* ``rides``            -- ride records and their lifecycle status

Both mutable tables carry a ``version`` column: every write is an
``UPDATE ... WHERE version = :expected`` so concurrent writers to one row
serialise without holding locks across requests.

Indexes
-------
* **B-Tree** on ``status``, ``passenger_id``, ``driver_id`` for the
  "my rides" views.
* **B-Tree** on ``(on_line, parking_mode)`` for geo index rebuilds.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    Index,
    Integer,
    String,
)

from .database import Base
from ride_service.domain.enums import PaymentType, RideStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class DriverProfileModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), nullable=True)
    rating = Column(Float, default=5.0, nullable=False)
    review_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class DriverPresenceModel(Base):
    __tablename__ = "driver_presence"

    driver_id = Column(Integer, primary_key=True, autoincrement=False)
    on_line = Column(Boolean, default=False, nullable=False)
    parking_mode = Column(Boolean, default=False, nullable=False)
    busy = Column(Boolean, default=False, nullable=False)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_presence_visibility", "on_line", "parking_mode"),
    )


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    passenger_id = Column(Integer, nullable=True)
    driver_id = Column(Integer, nullable=True)
    created_by_driver_id = Column(Integer, nullable=True)

    origin_lat = Column(Float, nullable=False)
    origin_lng = Column(Float, nullable=False)
    destination_lat = Column(Float, nullable=False)
    destination_lng = Column(Float, nullable=False)
    origin_name = Column(String(255), nullable=True)
    destination_name = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)

    distance = Column(Float, nullable=True)
    price = Column(Float, nullable=True)
    payment_type = Column(
        Enum(PaymentType, name="payment_type", values_callable=_enum_values),
        default=PaymentType.CASH,
        nullable=False,
    )
    status = Column(
        Enum(RideStatus, name="ride_status", values_callable=_enum_values),
        default=RideStatus.PENDING,
        nullable=False,
    )
    cancellation_reason = Column(String(500), nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_passenger", "passenger_id"),
        Index("idx_rides_driver", "driver_id"),
    )
