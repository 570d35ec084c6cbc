from dataclasses import dataclass, field
from typing import List, Tuple
from uuid import uuid4

from . import matrix
from .config import Config
from .db import session_scope
from .errors import NotFoundError, PipelineStage
from .logger import AdForgeLogger
from .models import Ad, AdExport, CampaignStatusEnum
from .pipeline import GenerationPipeline, PipelineFailure, PipelineResult
from .repositories import AdsRepository, BrandProfilesRepository, CampaignsRepository


@dataclass
class GenerationReport:
    campaign_id: str
    expected: int = 0
    ad_ids: List[str] = field(default_factory=list)
    failures: List[Tuple[str, PipelineFailure]] = field(default_factory=list)
    status: CampaignStatusEnum = CampaignStatusEnum.generating

    @property
    def succeeded(self) -> int:
        return len(self.ad_ids)


class CampaignOrchestrator:
    """Drives a generating campaign through its work matrix and resolves its final status."""

    def __init__(self, session_factory, pipeline: GenerationPipeline, config: Config = None, logger: AdForgeLogger = None):
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.config = config or Config()
        self.logger = logger or AdForgeLogger()

    def run(self, campaign_id: str) -> GenerationReport:
        """One orchestration pass. The campaign is expected to be in ``generating`` already."""
        report = GenerationReport(campaign_id=campaign_id)

        with session_scope(self.session_factory) as session:
            campaigns = CampaignsRepository(session)
            try:
                self._process_items(session, campaign_id, report)
            except Exception as e:
                self.logger.exception(f"Generation pass for campaign {campaign_id} crashed: {e}")
                session.rollback()
                # With nothing produced the campaign returns to draft; otherwise it stays generating
                if not report.succeeded:
                    campaigns.set_status(campaign_id, CampaignStatusEnum.draft)
                    report.status = CampaignStatusEnum.draft
                raise

            report.status = CampaignStatusEnum.active if report.succeeded else CampaignStatusEnum.draft
            campaigns.set_status(campaign_id, report.status)

        self.logger.info(
            f"Campaign {campaign_id}: {report.succeeded}/{report.expected} ads generated, status {report.status.value}"
        )
        return report

    def _process_items(self, session, campaign_id: str, report: GenerationReport) -> None:
        campaign = CampaignsRepository(session).get(campaign_id)
        if not campaign:
            raise NotFoundError(f"Campaign not found: {campaign_id}")
        brand = BrandProfilesRepository(session).get(campaign.brand_profile_id)
        if not brand:
            raise NotFoundError(f"Brand profile not found: {campaign.brand_profile_id}")

        items = matrix.expand(campaign, brand)
        report.expected = len(items)
        style = campaign.style or "minimal"
        self.logger.info(f"Processing campaign {campaign.name}: {len(items)} work item(s)")

        ads = AdsRepository(session)
        for index, item in enumerate(items):
            self.logger.info(
                f"Work item {index + 1}/{len(items)}: {item.target.name} for {item.platform_name} ({item.width}x{item.height})"
            )
            ad_id = str(uuid4())
            stage = PipelineStage.internal
            try:
                outcome = self.pipeline.run(item, brand, style, campaign.custom_instructions, ad_id=ad_id)
                if isinstance(outcome, PipelineFailure):
                    report.failures.append((item.label, outcome))
                    continue

                stage = PipelineStage.persistence
                self._persist(ads, ad_id, campaign, item, style, outcome)
            except Exception as e:
                failure = PipelineFailure(stage=stage, cause=e)
                self.logger.exception(f"Work item {item.label} failed at {failure}")
                report.failures.append((item.label, failure))
                continue
            report.ad_ids.append(ad_id)

    def _persist(self, ads: AdsRepository, ad_id: str, campaign, item: matrix.WorkItem, style: str, result: PipelineResult):
        breakdown = result.cost_breakdown
        ad = Ad(
            id=ad_id,
            campaign_id=campaign.id,
            brand_profile_id=campaign.brand_profile_id,
            style=style,
            headline=result.copy.headline,
            body=result.copy.body,
            cta=result.copy.cta,
            hashtags=result.copy.hashtags,
            image_url=result.image.url,
            image_public_id=result.image.public_id,
            image_prompt=result.prompt,
            product_name=item.target.name if item.target.kind == matrix.TargetKind.product else None,
            product_index=item.target.product_index,
            matrix_position=item.position,
            generation_cost=breakdown.total,
            cost_breakdown=breakdown.to_dict(),
        )
        export = AdExport(
            platform=item.platform,
            width=item.width,
            height=item.height,
            format=self.config.EXPORT_FORMAT,
            url=result.image.url,
            public_id=result.image.public_id,
        )
        ads.create_with_exports(ad, [export])
        self.logger.info(f"Saved ad {ad_id} for {item.label} (${breakdown.total:.4f})")
