"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 driver profiles
  - driver presence for each (spread around central Almaty): five parked,
    two on line without parking, one off line
  - 4 sample rides (pending, driver-initiated, assigned, completed)
"""

import asyncio

from sqlalchemy import text

from ride_service.config import settings
from ride_service.domain.entities import DriverPresence, DriverProfile, Location, Ride
from ride_service.domain.enums import PaymentType, RideStatus
from ride_service.domain.pricing import PricingEngine
from ride_service.infrastructure.database import build_engine, build_session_factory
from ride_service.infrastructure.repositories import (
    DriverPresenceRepository,
    DriverProfileRepository,
    RideRepository,
)

# Almaty city centre (approx)
CENTER_LAT, CENTER_LNG = 43.2381, 76.9452


DRIVERS = [
    {"name": "Aidar Nurlanov", "phone": "+77010000001", "rating": 4.9, "reviews": 312},
    {"name": "Dana Seitkali", "phone": "+77010000002", "rating": 4.8, "reviews": 127},
    {"name": "Yerlan Abenov", "phone": "+77010000003", "rating": 4.6, "reviews": 58},
    {"name": "Madina Akhmetova", "phone": "+77010000004", "rating": 4.95, "reviews": 401},
    {"name": "Timur Zhaksylykov", "phone": "+77010000005", "rating": 4.4, "reviews": 19},
    {"name": "Aruzhan Omarova", "phone": "+77010000006", "rating": 4.7, "reviews": 86},
    {"name": "Nurlan Bekov", "phone": "+77010000007", "rating": 4.5, "reviews": 44},
    {"name": "Saule Kassymova", "phone": "+77010000008", "rating": 5.0, "reviews": 3},
]

PRESENCE = [
    # Parked near the centre
    {"lat": 43.2385, "lng": 76.9460, "on_line": True, "parking": True},
    {"lat": 43.2400, "lng": 76.9300, "on_line": True, "parking": True},
    {"lat": 43.2550, "lng": 76.9500, "on_line": True, "parking": True},
    {"lat": 43.2220, "lng": 76.8512, "on_line": True, "parking": True},
    # Parked far out, beyond the default search radius
    {"lat": 43.3520, "lng": 77.0400, "on_line": True, "parking": True},
    # On line, not parked (the second carries the assigned ride)
    {"lat": 43.2460, "lng": 76.9210, "on_line": True, "parking": False},
    {"lat": 43.2300, "lng": 76.9600, "on_line": True, "parking": False, "busy": True},
    # Off line
    {"lat": 43.2600, "lng": 76.9300, "on_line": False, "parking": False},
]


async def seed():
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    pricing = PricingEngine(
        base_fare=settings.base_fare,
        rate_per_km=settings.rate_per_km,
        precision=settings.distance_precision,
    )
    async with session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM drivers"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            await engine.dispose()
            return

        # ── Drivers ───────────────────────────────────────────────────
        profiles = DriverProfileRepository(session)
        presences = DriverPresenceRepository(session)
        for driver_id, (d, p) in enumerate(zip(DRIVERS, PRESENCE), start=1):
            await profiles.add(
                DriverProfile(
                    id=driver_id,
                    name=d["name"],
                    phone=d["phone"],
                    rating=d["rating"],
                    review_count=d["reviews"],
                )
            )
            await presences.add(
                DriverPresence(
                    driver_id=driver_id,
                    on_line=p["on_line"],
                    parking_mode=p["parking"],
                    busy=p.get("busy", False),
                    location=Location(p["lat"], p["lng"]),
                )
            )
        print(f"  Created {len(DRIVERS)} drivers with presence")

        # ── Rides ─────────────────────────────────────────────────────
        rides_data = [
            {
                "passenger_id": 101,
                "origin": (43.2381, 76.9452),
                "destination": (43.2220, 76.8512),
                "origin_name": "Republic Square",
                "destination_name": "Sairan",
                "status": RideStatus.PENDING,
            },
            {
                "created_by_driver_id": 6,
                "origin": (43.2460, 76.9210),
                "destination": (43.2567, 76.9286),
                "origin_name": "Abay Ave",
                "destination_name": "Green Bazaar",
                "status": RideStatus.PENDING,
            },
            {
                "passenger_id": 102,
                "driver_id": 7,
                "origin": (43.2300, 76.9600),
                "destination": (43.3520, 77.0400),
                "origin_name": "Dostyk Ave",
                "destination_name": "Airport",
                "status": RideStatus.DRIVER_ASSIGNED,
                "payment_type": PaymentType.CARD,
            },
            {
                "passenger_id": 101,
                "driver_id": 1,
                "origin": (43.2385, 76.9460),
                "destination": (43.2400, 76.9300),
                "status": RideStatus.COMPLETED,
            },
        ]

        rides = RideRepository(session)
        for r in rides_data:
            origin = Location(*r["origin"])
            destination = Location(*r["destination"])
            info = pricing.compute_ride_info(origin, destination)
            await rides.add(
                Ride(
                    passenger_id=r.get("passenger_id"),
                    driver_id=r.get("driver_id"),
                    created_by_driver_id=r.get("created_by_driver_id"),
                    origin=origin,
                    destination=destination,
                    origin_name=r.get("origin_name"),
                    destination_name=r.get("destination_name"),
                    city="Almaty",
                    distance=info.distance,
                    price=info.price,
                    payment_type=r.get("payment_type", PaymentType.CASH),
                    status=r["status"],
                )
            )
        print(f"  Created {len(rides_data)} rides")

        await session.commit()
        print("\nSeed complete!")
    await engine.dispose()


async def main():
    print("Seeding database...")
    await seed()


if __name__ == "__main__":
    asyncio.run(main())
