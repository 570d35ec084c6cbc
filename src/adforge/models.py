from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

import sqlalchemy as sa
from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CampaignStatusEnum(str, Enum):
    draft = "draft"
    generating = "generating"
    active = "active"
    completed = "completed"
    archived = "archived"


class BrandProfile(Base):
    __tablename__ = "brand_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    company_name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")
    personality: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    primary_color: Mapped[str] = mapped_column(String(16), nullable=False, default="#000000")
    secondary_color: Mapped[str] = mapped_column(String(16), nullable=False, default="#FFFFFF")
    accent_color: Mapped[str] = mapped_column(String(16), nullable=False, default="#888888")
    target_audience: Mapped[str] = mapped_column(Text, nullable=False, default="")
    voice_tone: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visual_style: Mapped[str] = mapped_column(Text, nullable=False, default="")
    industry: Mapped[str] = mapped_column(Text, nullable=False, default="")
    unique_selling_points: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    products: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now, onupdate=_now)

    campaigns: Mapped[list["Campaign"]] = relationship(
        back_populates="brand_profile", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def colors(self) -> dict:
        return {"primary": self.primary_color, "secondary": self.secondary_color, "accent": self.accent_color}


class Campaign(Base):
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand_profile_id: Mapped[str] = mapped_column(
        ForeignKey("brand_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    target_platforms: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    style: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    custom_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    selected_products: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    include_brand_ad: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    status: Mapped[CampaignStatusEnum] = mapped_column(
        sa.Enum(CampaignStatusEnum, name="campaign_status"),
        nullable=False,
        default=CampaignStatusEnum.draft,
        index=True,
    )
    generation_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now, onupdate=_now)

    brand_profile: Mapped[BrandProfile] = relationship(back_populates="campaigns")
    ads: Mapped[list["Ad"]] = relationship(
        back_populates="campaign",
        cascade="all, delete",
        passive_deletes=True,
        order_by=lambda: [Ad.created_at, Ad.matrix_position],
    )


class Ad(Base):
    __tablename__ = "ads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    campaign_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=True, index=True
    )
    brand_profile_id: Mapped[str] = mapped_column(
        ForeignKey("brand_profiles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    style: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    headline: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    cta: Mapped[str] = mapped_column(Text, nullable=False)
    hashtags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    image_url: Mapped[str] = mapped_column(Text, nullable=False)
    image_public_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    matrix_position: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    has_product_image: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    product_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    generation_cost: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    cost_breakdown: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now)

    campaign: Mapped[Optional[Campaign]] = relationship(back_populates="ads")
    exports: Mapped[list["AdExport"]] = relationship(
        back_populates="ad", cascade="all, delete-orphan", passive_deletes=True
    )


class AdExport(Base):
    __tablename__ = "ad_exports"
    __table_args__ = (UniqueConstraint("ad_id", "platform", name="uq_ad_exports_ad_platform"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    ad_id: Mapped[str] = mapped_column(ForeignKey("ads.id", ondelete="CASCADE"), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(String(32), nullable=False)
    width: Mapped[int] = mapped_column(Integer, nullable=False)
    height: Mapped[int] = mapped_column(Integer, nullable=False)
    format: Mapped[str] = mapped_column(String(8), nullable=False, default="png")
    url: Mapped[str] = mapped_column(Text, nullable=False)
    public_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now)

    ad: Mapped[Ad] = relationship(back_populates="exports")


class CostEntry(Base):
    __tablename__ = "cost_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    service: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(64), nullable=False)
    cost: Mapped[float] = mapped_column(Float, nullable=False)
    details: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    # Not a foreign key: entries of a failed work item point at an ad that was never created.
    ad_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_now, index=True)
