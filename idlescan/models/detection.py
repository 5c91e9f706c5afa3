from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import String, Float, Text, DateTime, Uuid as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from idlescan.shared.db.base import Base


class DetectedResourceMixin:
    """
    Columns shared by every detected-resource table.

    Rows are append-only: one per (resource, metric) match per scan.
    """

    id: Mapped[UUID] = mapped_column(PG_UUID(), primary_key=True, default=uuid4)
    resource_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    region: Mapped[str] = mapped_column(String(32), nullable=False)
    metric: Mapped[str] = mapped_column(String(255), nullable=False)
    launch_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    price_per_hour: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    price_per_month: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    total_spend_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    detected_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )


class DetectedELBV2(DetectedResourceMixin, Base):
    """Underutilized application/network load balancers."""

    __tablename__ = "aws_elbv2"


class DetectedELB(DetectedResourceMixin, Base):
    """Underutilized classic load balancers."""

    __tablename__ = "aws_elb"
