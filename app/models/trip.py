from decimal import Decimal
from sqlalchemy import String, Integer, DateTime, Text, Numeric, JSON, ForeignKey, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from app.db.session import Base

class Trip(Base):
    __tablename__ = "trips"
    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="ck_trips_available_seats_nonneg"),
        CheckConstraint("price IS NULL OR price >= 0", name="ck_trips_price_nonneg"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    driver_id: Mapped[str] = mapped_column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), index=True)

    origin_text: Mapped[str] = mapped_column(String(255))
    destination_text: Mapped[str] = mapped_column(String(255))
    # [lng, lat], derived from the first/last pair of route_geojson
    origin_point: Mapped[list | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    destination_point: Mapped[list | None] = mapped_column(JSON(none_as_null=True), nullable=True)

    departure_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    available_seats: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    route_geojson: Mapped[dict | None] = mapped_column(JSON(none_as_null=True), nullable=True)  # GeoJSON Feature, LineString geometry

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
