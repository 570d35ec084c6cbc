from datetime import datetime, timedelta, timezone
from typing import List

from . import matrix, platforms
from .campaign_processing import CampaignOrchestrator
from .config import Config
from .db import session_scope
from .errors import NotFoundError, ValidationError
from .logger import AdForgeLogger
from .models import Ad, BrandProfile, Campaign, CampaignStatusEnum
from .repositories import AdsRepository, BrandProfilesRepository, CampaignsRepository
from .worker import GenerationWorker

EDITABLE_FIELDS = {
    "name",
    "description",
    "target_platforms",
    "style",
    "custom_instructions",
    "selected_products",
    "include_brand_ad",
    "status",
}
# generating is entered only through start_generation
USER_STATUSES = {
    CampaignStatusEnum.draft,
    CampaignStatusEnum.active,
    CampaignStatusEnum.completed,
    CampaignStatusEnum.archived,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CampaignService:
    """Request-level campaign operations: validate, persist and hand generation to the worker."""

    def __init__(
        self,
        session_factory,
        orchestrator: CampaignOrchestrator,
        worker: GenerationWorker,
        config: Config = None,
        logger: AdForgeLogger = None,
    ):
        self.session_factory = session_factory
        self.orchestrator = orchestrator
        self.worker = worker
        self.config = config or Config()
        self.logger = logger or AdForgeLogger()

    def create_campaign(
        self,
        brand_profile_id: str,
        name: str,
        target_platforms: List[str],
        style: str = None,
        custom_instructions: str = None,
        description: str = None,
        selected_products: List[int] = None,
        include_brand_ad: bool = True,
    ) -> Campaign:
        if not name or not brand_profile_id or not target_platforms:
            raise ValidationError("name, brand_profile_id and at least one target platform are required")

        with session_scope(self.session_factory) as session:
            brand = self._get_brand(session, brand_profile_id)
            valid_platforms = self._validate_platforms(target_platforms)
            selected = self._validate_products(brand, selected_products or [])

            campaign = CampaignsRepository(session).create(
                brand_profile_id,
                name,
                description=description,
                target_platforms=valid_platforms,
                style=style,
                custom_instructions=custom_instructions,
                selected_products=selected,
                include_brand_ad=include_brand_ad,
                status=CampaignStatusEnum.draft,
            )
        self.logger.info(f"Created campaign {campaign.name} ({campaign.id}) for {len(valid_platforms)} platform(s)")
        return campaign

    def update_campaign(self, campaign_id: str, **fields) -> Campaign:
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        with session_scope(self.session_factory) as session:
            repo = CampaignsRepository(session)
            campaign = self._get_campaign(session, campaign_id)
            if campaign.status == CampaignStatusEnum.generating:
                raise ValidationError("Campaign is generating and cannot be edited")

            if "target_platforms" in fields:
                fields["target_platforms"] = self._validate_platforms(fields["target_platforms"] or [])
            if "selected_products" in fields:
                brand = self._get_brand(session, campaign.brand_profile_id)
                fields["selected_products"] = self._validate_products(brand, fields["selected_products"] or [])
            if "status" in fields:
                status = CampaignStatusEnum(fields["status"])
                if status not in USER_STATUSES:
                    raise ValidationError(f"Status {status.value} is set by generation only")
                fields["status"] = status

            return repo.update(campaign_id, **fields)

    def get_campaign(self, campaign_id: str) -> Campaign:
        with session_scope(self.session_factory) as session:
            return self._get_campaign(session, campaign_id)

    def list_campaigns(self, brand_profile_id: str = None) -> List[Campaign]:
        with session_scope(self.session_factory) as session:
            return CampaignsRepository(session).list(brand_profile_id=brand_profile_id)

    def delete_campaign(self, campaign_id: str) -> None:
        """Delete a campaign together with every Ad it owns."""
        with session_scope(self.session_factory) as session:
            if not CampaignsRepository(session).delete(campaign_id):
                raise NotFoundError(f"Campaign not found: {campaign_id}")
        self.logger.info(f"Deleted campaign {campaign_id}")

    def add_ad(self, campaign_id: str, ad_id: str) -> Ad:
        with session_scope(self.session_factory) as session:
            self._get_campaign(session, campaign_id)
            ad = AdsRepository(session).set_campaign(ad_id, campaign_id)
            if not ad:
                raise NotFoundError(f"Ad not found: {ad_id}")
            return ad

    def remove_ad(self, campaign_id: str, ad_id: str) -> Ad:
        """Detach an ad from its campaign; the ad itself is kept."""
        with session_scope(self.session_factory) as session:
            repo = AdsRepository(session)
            ad = repo.get(ad_id)
            if not ad or ad.campaign_id != campaign_id:
                raise NotFoundError(f"Ad {ad_id} not found in campaign {campaign_id}")
            return repo.set_campaign(ad_id, None)

    def list_ads(self, campaign_id: str = None) -> List[Ad]:
        with session_scope(self.session_factory) as session:
            return AdsRepository(session).list(campaign_id=campaign_id)

    def start_generation(self, campaign_id: str) -> dict:
        """Validate, flip to generating and enqueue the pass. Returns before any item runs."""
        with session_scope(self.session_factory) as session:
            repo = CampaignsRepository(session)
            campaign = self._get_campaign(session, campaign_id)
            if campaign.status == CampaignStatusEnum.generating:
                raise ValidationError("Campaign is already generating")

            valid_platforms = platforms.validate(campaign.target_platforms or [])
            if not valid_platforms:
                raise ValidationError("No target platforms configured")

            brand = self._get_brand(session, campaign.brand_profile_id)
            items = matrix.expand(campaign, brand)
            if not items:
                raise ValidationError("Campaign has no ad targets: enable the brand ad or select a product")

            repo.set_status(campaign_id, CampaignStatusEnum.generating, generation_started_at=_utcnow())

        self.worker.submit(campaign_id, self.orchestrator.run, campaign_id)
        self.logger.info(f"Queued generation of {len(items)} ad(s) for campaign {campaign_id}")

        return {
            "campaign_id": campaign_id,
            "message": f"Starting ad generation for {len(valid_platforms)} platforms",
            "work_items": len(items),
            "platforms": [
                {"id": platform_id, **self._platform_info(platform_id)} for platform_id in valid_platforms
            ],
        }

    def reconcile_stale(self, ttl_minutes: int = None) -> List[str]:
        """Resolve campaigns stuck in generating longer than the TTL (e.g. after a process restart)."""
        ttl = ttl_minutes if ttl_minutes is not None else self.config.STALE_GENERATION_TTL_MINUTES
        cutoff = _utcnow() - timedelta(minutes=ttl)

        resolved = []
        with session_scope(self.session_factory) as session:
            repo = CampaignsRepository(session)
            for campaign in repo.list_stale_generating(cutoff):
                if self.worker.is_running(campaign.id):
                    continue
                has_ads = bool(AdsRepository(session).list(campaign_id=campaign.id))
                status = CampaignStatusEnum.active if has_ads else CampaignStatusEnum.draft
                repo.set_status(campaign.id, status)
                self.logger.warning(f"Campaign {campaign.id} was stuck generating; set to {status.value}")
                resolved.append(campaign.id)
        return resolved

    def _get_campaign(self, session, campaign_id: str) -> Campaign:
        campaign = CampaignsRepository(session).get(campaign_id)
        if not campaign:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        return campaign

    def _get_brand(self, session, brand_profile_id: str) -> BrandProfile:
        brand = BrandProfilesRepository(session).get(brand_profile_id)
        if not brand:
            raise NotFoundError(f"Brand profile not found: {brand_profile_id}")
        return brand

    @staticmethod
    def _validate_platforms(candidates: List[str]) -> List[str]:
        valid = platforms.validate(candidates)
        if not valid:
            options = ", ".join(platforms.PLATFORM_DIMENSIONS)
            raise ValidationError(f"Invalid platforms. Valid options: {options}")
        return valid

    @staticmethod
    def _validate_products(brand: BrandProfile, selected: List[int]) -> List[int]:
        count = len(brand.products or [])
        for index in selected:
            if not isinstance(index, int) or not 0 <= index < count:
                raise ValidationError(f"Product index {index} is out of range ({count} product(s))")
        return list(selected)

    @staticmethod
    def _platform_info(platform_id: str) -> dict:
        dims = platforms.dimensions_for(platform_id)
        return {"name": dims.display_name, "width": dims.width, "height": dims.height}
