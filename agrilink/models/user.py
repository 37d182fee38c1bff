from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    JSON,
    String,
)

from agrilink.models.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "longitude IS NULL OR (longitude >= -180 AND longitude <= 180)",
            name="users_longitude_range",
        ),
        CheckConstraint(
            "latitude IS NULL OR (latitude >= -90 AND latitude <= 90)",
            name="users_latitude_range",
        ),
        CheckConstraint("experience >= 0", name="users_experience_non_negative"),
        Index("ix_users_lat_lon", "latitude", "longitude"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    password_hash = Column(String, nullable=False)
    longitude = Column(Float)
    latitude = Column(Float)
    crops = Column(JSON, nullable=False, default=list)
    expertise = Column(String, index=True)
    equipment = Column(JSON, nullable=False, default=list)
    experience = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def has_location(self) -> bool:
        return self.longitude is not None and self.latitude is not None


__all__ = ["User"]
