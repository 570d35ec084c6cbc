from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Ad, AdExport, BrandProfile, Campaign, CampaignStatusEnum


class Repository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, obj):
        self.session.add(obj)
        self.session.commit()
        self.session.refresh(obj)
        return obj


class BrandProfilesRepository(Repository):
    def get(self, profile_id: str) -> Optional[BrandProfile]:
        return self.session.get(BrandProfile, profile_id)

    def list(self) -> List[BrandProfile]:
        stmt = select(BrandProfile).order_by(BrandProfile.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def create(self, company_name: str, **fields) -> BrandProfile:
        return self.save(BrandProfile(company_name=company_name, **fields))

    def update(self, profile_id: str, **fields) -> Optional[BrandProfile]:
        profile = self.get(profile_id)
        if not profile:
            return None
        for key, value in fields.items():
            setattr(profile, key, value)
        self.session.commit()
        self.session.refresh(profile)
        return profile

    def delete(self, profile_id: str) -> bool:
        profile = self.get(profile_id)
        if not profile:
            return False
        self.session.delete(profile)
        self.session.commit()
        return True


class CampaignsRepository(Repository):
    def list(self, brand_profile_id: Optional[str] = None, status: Optional[CampaignStatusEnum] = None) -> List[Campaign]:
        stmt = select(Campaign)
        if brand_profile_id:
            stmt = stmt.where(Campaign.brand_profile_id == brand_profile_id)
        if status:
            stmt = stmt.where(Campaign.status == status)
        stmt = stmt.order_by(Campaign.created_at.desc())
        return list(self.session.scalars(stmt).all())

    def get(self, campaign_id: str) -> Optional[Campaign]:
        return self.session.get(Campaign, campaign_id)

    def create(self, brand_profile_id: str, name: str, **fields) -> Campaign:
        return self.save(Campaign(brand_profile_id=brand_profile_id, name=name, **fields))

    def update(self, campaign_id: str, **fields) -> Optional[Campaign]:
        campaign = self.get(campaign_id)
        if not campaign:
            return None
        for key, value in fields.items():
            setattr(campaign, key, value)
        self.session.commit()
        self.session.refresh(campaign)
        return campaign

    def set_status(self, campaign_id: str, status: CampaignStatusEnum, **fields) -> Optional[Campaign]:
        return self.update(campaign_id, status=status, **fields)

    def list_stale_generating(self, started_before: datetime) -> List[Campaign]:
        stmt = select(Campaign).where(
            Campaign.status == CampaignStatusEnum.generating,
            Campaign.generation_started_at < started_before,
        )
        return list(self.session.scalars(stmt).all())

    def delete(self, campaign_id: str) -> bool:
        campaign = self.get(campaign_id)
        if not campaign:
            return False
        self.session.delete(campaign)
        self.session.commit()
        return True


class AdsRepository(Repository):
    def get(self, ad_id: str) -> Optional[Ad]:
        return self.session.get(Ad, ad_id)

    def list(self, campaign_id: Optional[str] = None, brand_profile_id: Optional[str] = None) -> List[Ad]:
        stmt = select(Ad)
        if campaign_id:
            stmt = stmt.where(Ad.campaign_id == campaign_id)
        if brand_profile_id:
            stmt = stmt.where(Ad.brand_profile_id == brand_profile_id)
        stmt = stmt.order_by(Ad.created_at, Ad.matrix_position)
        return list(self.session.scalars(stmt).all())

    def create_with_exports(self, ad: Ad, exports: List[AdExport]) -> Ad:
        """Insert an ad, its cost fields and its exports in a single transaction."""
        try:
            self.session.add(ad)
            self.session.flush()
            for export in exports:
                export.ad_id = ad.id
                self.session.add(export)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(ad)
        return ad

    def add_export(self, export: AdExport) -> AdExport:
        return self.save(export)

    def update(self, ad_id: str, **fields) -> Optional[Ad]:
        ad = self.get(ad_id)
        if not ad:
            return None
        for key, value in fields.items():
            setattr(ad, key, value)
        self.session.commit()
        self.session.refresh(ad)
        return ad

    def list_exports(self, ad_id: str) -> List[AdExport]:
        stmt = select(AdExport).where(AdExport.ad_id == ad_id).order_by(AdExport.created_at)
        return list(self.session.scalars(stmt).all())

    def set_campaign(self, ad_id: str, campaign_id: Optional[str]) -> Optional[Ad]:
        ad = self.get(ad_id)
        if not ad:
            return None
        ad.campaign_id = campaign_id
        self.session.commit()
        self.session.refresh(ad)
        return ad

    def set_costs(self, ad_id: str, total: float, breakdown: dict) -> Optional[Ad]:
        ad = self.get(ad_id)
        if not ad:
            return None
        ad.generation_cost = total
        ad.cost_breakdown = breakdown
        self.session.commit()
        self.session.refresh(ad)
        return ad

    def delete(self, ad_id: str) -> bool:
        ad = self.get(ad_id)
        if not ad:
            return False
        self.session.delete(ad)
        self.session.commit()
        return True
