from datetime import datetime, timedelta

import pytest

from adforge import costs
from adforge.costs import AdCostBreakdown
from adforge.db import session_scope
from adforge.errors import NotFoundError
from adforge.models import Ad, CostEntry
from adforge.repositories import AdsRepository


def _ad(session_factory, brand, campaign=None, cost=0.0, product_name=None):
    with session_scope(session_factory) as session:
        return AdsRepository(session).save(
            Ad(
                campaign_id=campaign.id if campaign else None,
                brand_profile_id=brand.id,
                style="minimal",
                headline="h",
                body="b",
                cta="c",
                image_url="https://example.com/a.png",
                product_name=product_name,
                generation_cost=cost,
            )
        )


def test_token_and_image_pricing():
    assert costs.token_cost("gemini-3-flash", 1000, 1000) == pytest.approx(0.0035)
    assert costs.image_cost("flux-pro-1.1", 2) == pytest.approx(0.08)
    assert costs.image_cost("cloudinary") == 0.0
    assert costs.request_cost("parallel-ai", 3) == pytest.approx(0.03)
    assert costs.display_name("remove-bg") == "Remove.bg"
    assert costs.display_name("unknown-service") == "unknown-service"


def test_breakdown_add_and_serialize():
    breakdown = AdCostBreakdown()
    breakdown.add("flux-pro-1.1", 0.04)
    breakdown.add("remove-bg", 0.2)
    breakdown.add("gemini-3-flash", 0.001)

    data = breakdown.to_dict()
    assert data["total"] == pytest.approx(0.241)
    assert AdCostBreakdown.from_dict(data).total == pytest.approx(0.241)
    with pytest.raises(ValueError):
        breakdown.add("parallel-ai", 0.01)


def test_summary_groups_by_service(ledger):
    ledger.track_token_usage("gemini-3-flash", "image-prompt", 1000, 500)
    ledger.track_token_usage("gemini-3-flash", "ad-copy", 1000, 500)
    ledger.track_image_generation("flux-pro-1.1", "image-generation", 1)
    ledger.track_api_request("parallel-ai", "brand-research")

    summary = ledger.summary()

    gemini = summary["by_service"]["gemini-3-flash"]
    assert gemini["count"] == 2
    assert gemini["tokens"] == {"input": 2000, "output": 1000}
    assert gemini["display_name"] == "Gemini 3 Flash"
    assert summary["by_service"]["flux-pro-1.1"]["images"] == 1
    assert summary["by_service"]["parallel-ai"]["requests"] == 1
    assert summary["total_cost"] == pytest.approx(2 * 0.002 + 0.04 + 0.01)
    assert len(summary["entries"]) == 4
    assert ledger.total_spending() == pytest.approx(summary["total_cost"])


def test_summary_window_limits_entries_not_totals(ledger):
    for _ in range(5):
        ledger.track_image_generation("flux-pro-1.1", "image-generation")

    summary = ledger.summary(recent_limit=2)

    assert len(summary["entries"]) == 2
    assert summary["total_cost"] == pytest.approx(0.2)


def test_summary_since_filters_entries(ledger, session_factory):
    old = ledger.track_image_generation("flux-pro-1.1", "image-generation")
    with session_scope(session_factory) as session:
        session.get(CostEntry, old.id).created_at = datetime(2020, 1, 1)
        session.commit()
    ledger.track_image_generation("flux-pro-fill", "image-fill")

    summary = ledger.summary(since=datetime.now() - timedelta(days=30))

    assert list(summary["by_service"]) == ["flux-pro-fill"]
    assert summary["total_cost"] == pytest.approx(0.05)


def test_price_changes_are_not_retroactive(ledger, monkeypatch):
    ledger.track_image_generation("flux-pro-1.1", "image-generation")
    monkeypatch.setitem(costs.PRICING, "flux-pro-1.1", {"per_image": 1.0, "display_name": "Flux Pro 1.1"})
    ledger.track_image_generation("flux-pro-1.1", "image-generation")

    assert ledger.total_spending() == pytest.approx(1.04)


def test_campaign_rollup_without_ads(ledger, make_brand, make_campaign):
    campaign = make_campaign(make_brand())

    assert ledger.costs_for_campaign(campaign.id) == {"total": 0.0, "ad_count": 0, "average_per_ad": 0.0, "ads": []}


def test_campaign_rollup_with_one_and_many_ads(ledger, session_factory, make_brand, make_campaign):
    brand = make_brand()
    campaign = make_campaign(brand)
    _ad(session_factory, brand, campaign, cost=0.3)

    single = ledger.costs_for_campaign(campaign.id)
    assert single["total"] == pytest.approx(0.3)
    assert single["average_per_ad"] == pytest.approx(0.3)
    assert single["ads"][0]["product_name"] == "Brand Ad"

    _ad(session_factory, brand, campaign, cost=0.1, product_name="Trail Boot")
    _ad(session_factory, brand, None, cost=5.0)

    many = ledger.costs_for_campaign(campaign.id)
    assert many["ad_count"] == 2
    assert many["total"] == pytest.approx(0.4)
    assert many["average_per_ad"] == pytest.approx(0.2)
    assert {ad["product_name"] for ad in many["ads"]} == {"Brand Ad", "Trail Boot"}


def test_recalculate_rebuilds_from_entries(ledger, session_factory, make_brand):
    ad = _ad(session_factory, make_brand(), cost=99.0)
    ledger.track_image_generation("flux-pro-fill", "image-fill", 1, ad.id)
    ledger.track_image_generation("remove-bg", "background-removal", 1, ad.id)
    ledger.track_token_usage("gemini-3-flash", "ad-copy", 1000, 0, ad.id)

    breakdown = ledger.recalculate_ad_costs(ad.id)

    assert breakdown.image_generation == pytest.approx(0.05)
    assert breakdown.background_removal == pytest.approx(0.2)
    assert breakdown.copy_generation == pytest.approx(0.0005)
    ad_costs = ledger.costs_for_ad(ad.id)
    assert ad_costs["total"] == pytest.approx(0.2505)
    assert ad_costs["breakdown"]["total"] == pytest.approx(0.2505)
    assert len(ad_costs["entries"]) == 3


def test_recalculate_unknown_ad(ledger):
    with pytest.raises(NotFoundError):
        ledger.recalculate_ad_costs("nope")


def test_monthly_usage(ledger, session_factory):
    first = ledger.track_image_generation("flux-pro-1.1", "image-generation")
    ledger.track_image_generation("flux-pro-1.1", "image-generation")
    with session_scope(session_factory) as session:
        session.get(CostEntry, first.id).created_at = datetime(2025, 3, 15)
        session.commit()

    months = {row["month"]: row for row in ledger.monthly_usage()}

    assert months["2025-03"]["total"] == pytest.approx(0.04)
    assert months["2025-03"]["by_service"] == {"flux-pro-1.1": pytest.approx(0.04)}
    assert len(months) == 2
