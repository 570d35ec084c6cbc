import yaml

from adforge.campaign_loading import CampaignLoader
from adforge.main import AdForgeApp, print_cost_summary, process_all_campaigns
from adforge.models import CampaignStatusEnum

BRIEF = {
    "brand": {
        "company_name": "Acme",
        "industry": "Outdoor",
        "products": [{"name": "Trail Boot", "description": "Waterproof hiking boot"}],
    },
    "campaign": {"platforms": ["instagram-feed", "tiktok"], "selected_products": [0]},
}


def _app(session_factory, ledger, worker, service, ad_creator):
    return AdForgeApp(session_factory, ledger, worker, service, ad_creator)


def _write_brief(directory, data):
    directory.mkdir(parents=True)
    with open(directory / "brief.yaml", "w") as f:
        yaml.safe_dump(data, f)


def test_process_all_campaigns_generates_and_marks_done(
    tmp_path, session_factory, ledger, worker, service, ad_creator, config, logger
):
    _write_brief(tmp_path / "spring", BRIEF)
    loader = CampaignLoader(config, logger)
    app = _app(session_factory, ledger, worker, service, ad_creator)

    started = process_all_campaigns(app, loader, logger, str(tmp_path))

    assert len(started) == 1
    _, campaign_id = started[0]
    assert service.get_campaign(campaign_id).status == CampaignStatusEnum.active
    assert len(service.list_ads(campaign_id)) == 4

    with open(tmp_path / "spring" / "meta.yaml") as f:
        meta = yaml.safe_load(f)
    assert meta["status"] == "done"
    assert meta["ad_count"] == 4
    assert meta["campaign_status"] == "active"

    assert process_all_campaigns(app, loader, logger, str(tmp_path)) == []


def test_brief_that_cannot_start_is_left_pending(
    tmp_path, session_factory, ledger, worker, service, ad_creator, config, logger
):
    brief = {**BRIEF, "campaign": {"platforms": ["tiktok"], "include_brand_ad": False}}
    _write_brief(tmp_path / "empty", brief)
    app = _app(session_factory, ledger, worker, service, ad_creator)

    started = process_all_campaigns(app, CampaignLoader(config, logger), logger, str(tmp_path))

    assert started == []
    assert not (tmp_path / "empty" / "meta.yaml").exists()


def test_print_cost_summary(ledger, capsys):
    ledger.track_image_generation("flux-pro-1.1", "image-generation")

    print_cost_summary(ledger)

    out = capsys.readouterr().out
    assert "Total spend: $0.0400" in out
    assert "Flux Pro 1.1" in out
