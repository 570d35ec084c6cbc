#!/usr/bin/env python3
"""
AdForge - Main Entry Point

Generates platform-sized ad campaigns from YAML briefs: each brief seeds a brand
profile and a campaign, which is then generated in the background worker.
"""

from dataclasses import dataclass

from .ad_creation import AdCreator
from .background_removal import BackgroundRemover
from .campaign_loading import CampaignLoader
from .campaign_processing import CampaignOrchestrator
from .campaigns import CampaignService
from .config import Config
from .costs import CostLedger
from .db import init_db, make_engine, make_session_factory, session_scope
from .hosting import CloudinaryHost
from .image_generation import ImageGenerator
from .image_processing import ImageProcessor
from .logger import AdForgeLogger
from .pipeline import GenerationPipeline
from .prompt_generation import PromptGenerator
from .repositories import BrandProfilesRepository
from .worker import GenerationWorker


@dataclass
class AdForgeApp:
    session_factory: object
    ledger: CostLedger
    worker: GenerationWorker
    campaigns: CampaignService
    ad_creator: AdCreator


def build_app(config: Config = None, logger: AdForgeLogger = None, database_url: str = None) -> AdForgeApp:
    """Wire the store, provider clients and services together."""
    config = config or Config()
    logger = logger or AdForgeLogger(config.LOG_LEVEL, log_file=config.LOG_FILE)

    engine = make_engine(database_url or config.DATABASE_URL)
    init_db(engine)
    session_factory = make_session_factory(engine)

    ledger = CostLedger(session_factory, logger.child("costs"), config)
    pipeline = GenerationPipeline(
        PromptGenerator(config, logger),
        ImageGenerator(config, logger),
        ImageProcessor(config, logger),
        CloudinaryHost(config, logger),
        ledger,
        config,
        logger.child("pipeline"),
    )
    orchestrator = CampaignOrchestrator(session_factory, pipeline, config, logger.child("orchestrator"))
    worker = GenerationWorker(config.WORKER_MAX_WORKERS, logger.child("worker"))

    return AdForgeApp(
        session_factory=session_factory,
        ledger=ledger,
        worker=worker,
        campaigns=CampaignService(session_factory, orchestrator, worker, config, logger),
        ad_creator=AdCreator(session_factory, pipeline, BackgroundRemover(config, logger), config, logger),
    )


def process_all_campaigns(app: AdForgeApp, loader: CampaignLoader, logger: AdForgeLogger, campaigns_dir: str = None):
    """Seed and generate every pending brief, then mark each finished one done."""
    briefs = loader.load_campaign_briefs(campaigns_dir)
    if not briefs:
        logger.info("No campaign briefs found")
        return []

    logger.info(f"Found {len(briefs)} campaign(s) to process")

    # Campaigns left generating by an interrupted run
    app.campaigns.reconcile_stale()

    started = []
    for brief in briefs:
        try:
            campaign_id = seed_campaign(app, loader, brief)
            app.campaigns.start_generation(campaign_id)
            started.append((brief, campaign_id))
        except Exception as e:
            logger.exception(f"Failed to start campaign {brief.get('campaign_name', 'unknown')}: {e}")
            continue

    app.worker.join()
    failed_ids = {task_error.key for task_error in app.worker.errors()}

    for brief, campaign_id in started:
        if campaign_id in failed_ids:
            logger.error(f"Campaign {brief['campaign_name']} did not finish; it will be retried next run")
            continue
        campaign = app.campaigns.get_campaign(campaign_id)
        costs = app.ledger.costs_for_campaign(campaign_id)
        logger.info(
            f"Campaign {brief['campaign_name']}: {costs['ad_count']} ad(s), "
            f"status {campaign.status.value}, cost ${costs['total']:.4f}"
        )
        loader.mark_done(
            brief,
            {
                "campaign_id": campaign_id,
                "campaign_status": campaign.status.value,
                "ad_count": costs["ad_count"],
                "total_cost": round(costs["total"], 6),
            },
        )
    return started


def seed_campaign(app: AdForgeApp, loader: CampaignLoader, brief: dict) -> str:
    """Create the brief's brand profile and campaign; returns the campaign id."""
    with session_scope(app.session_factory) as session:
        brand = BrandProfilesRepository(session).create(
            brief["brand"]["company_name"], **loader.brand_fields(brief)
        )

    settings = brief["campaign"]
    campaign = app.campaigns.create_campaign(
        brand.id,
        brief["campaign_name"],
        settings["platforms"],
        style=settings.get("style"),
        custom_instructions=settings.get("custom_instructions"),
        description=settings.get("description"),
        selected_products=settings.get("selected_products") or [],
        include_brand_ad=settings.get("include_brand_ad", True),
    )
    return campaign.id


def print_cost_summary(ledger: CostLedger) -> None:
    summary = ledger.summary()
    print(f"\nTotal spend: ${summary['total_cost']:.4f}")
    for service, stats in summary["by_service"].items():
        print(f"  {stats['display_name']:<20} ${stats['total_cost']:.4f} ({stats['count']} call(s))")


def main():
    """Entry point for the application."""
    config = Config()
    logger = AdForgeLogger(config.LOG_LEVEL, log_file=config.LOG_FILE)
    app = build_app(config, logger)
    loader = CampaignLoader(config, logger)

    try:
        process_all_campaigns(app, loader, logger)
        print_cost_summary(app.ledger)
    finally:
        app.worker.shutdown()


if __name__ == "__main__":
    main()
