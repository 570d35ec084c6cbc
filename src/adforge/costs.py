"""
Cost ledger for external provider usage.

Every priced call is appended as a CostEntry. Entries store the computed amount,
never a reference into PRICING, so later price changes leave history untouched.
Global and per-service rollups read the raw entries; campaign rollups read the
denormalized ``generation_cost`` stored on each Ad.
"""

from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select

from .config import Config
from .db import session_scope
from .errors import NotFoundError
from .logger import AdForgeLogger
from .models import CostEntry
from .repositories import AdsRepository

# Token prices are per 1K tokens, everything else per unit (USD)
PRICING = {
    "gemini-3-flash": {"input": 0.0005, "output": 0.003, "display_name": "Gemini 3 Flash"},
    "flux-pro-1.1": {"per_image": 0.04, "display_name": "Flux Pro 1.1"},
    "flux-pro-fill": {"per_image": 0.05, "display_name": "Flux Pro Fill"},
    "remove-bg": {"per_image": 0.20, "display_name": "Remove.bg"},
    # Request-billed services are ledger-only; they never land in an Ad breakdown
    "parallel-ai": {"per_request": 0.01, "display_name": "Parallel AI"},
    "cloudinary": {"per_upload": 0.0, "display_name": "Cloudinary"},
}

# Which Ad breakdown bucket each service's spend lands in
SERVICE_CATEGORY = {
    "gemini-3-flash": "copy_generation",
    "flux-pro-1.1": "image_generation",
    "flux-pro-fill": "image_generation",
    "remove-bg": "background_removal",
    "cloudinary": "upload",
}


def token_cost(service: str, input_tokens: int, output_tokens: int) -> float:
    pricing = PRICING[service]
    return (input_tokens / 1000) * pricing["input"] + (output_tokens / 1000) * pricing["output"]


def image_cost(service: str, image_count: int = 1) -> float:
    pricing = PRICING[service]
    per_image = pricing.get("per_image", pricing.get("per_upload", 0.0))
    return per_image * image_count


def request_cost(service: str, request_count: int = 1) -> float:
    return PRICING[service]["per_request"] * request_count


def display_name(service: str) -> str:
    return PRICING.get(service, {}).get("display_name", service)


@dataclass
class AdCostBreakdown:
    image_generation: float = 0.0
    copy_generation: float = 0.0
    background_removal: float = 0.0
    upload: float = 0.0

    @property
    def total(self) -> float:
        return self.image_generation + self.copy_generation + self.background_removal + self.upload

    def add(self, service: str, amount: float) -> None:
        category = SERVICE_CATEGORY.get(service)
        if category is None:
            raise ValueError(f"Service {service} has no ad cost category")
        setattr(self, category, getattr(self, category) + amount)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total"] = self.total
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AdCostBreakdown":
        data = data or {}
        fields = ("image_generation", "copy_generation", "background_removal", "upload")
        return cls(**{key: float(data.get(key, 0.0)) for key in fields})


class CostLedger:
    """Append-only record of priced provider usage, with aggregation queries."""

    def __init__(self, session_factory, logger: AdForgeLogger = None, config: Config = None):
        self.session_factory = session_factory
        self.logger = logger or AdForgeLogger()
        self.config = config or Config()

    def record(self, service: str, operation: str, amount: float, details: dict = None, ad_id: str = None) -> CostEntry:
        """Append one priced usage event."""
        entry = CostEntry(service=service, operation=operation, cost=amount, details=details or {}, ad_id=ad_id)
        with session_scope(self.session_factory) as session:
            session.add(entry)
            session.commit()
            session.refresh(entry)
        return entry

    def track_token_usage(
        self, service: str, operation: str, input_tokens: int, output_tokens: int, ad_id: str = None, metadata: dict = None
    ) -> CostEntry:
        amount = token_cost(service, input_tokens, output_tokens)
        details = {"input_tokens": input_tokens, "output_tokens": output_tokens, **(metadata or {})}
        entry = self.record(service, operation, amount, details, ad_id)
        self.logger.info(
            f"[Cost] {display_name(service)} - {operation}: ${amount:.6f} ({input_tokens}+{output_tokens} tokens)"
        )
        return entry

    def track_image_generation(
        self, service: str, operation: str, image_count: int = 1, ad_id: str = None, metadata: dict = None
    ) -> CostEntry:
        amount = image_cost(service, image_count)
        details = {"image_count": image_count, **(metadata or {})}
        entry = self.record(service, operation, amount, details, ad_id)
        self.logger.info(f"[Cost] {display_name(service)} - {operation}: ${amount:.4f} ({image_count} image(s))")
        return entry

    def track_api_request(
        self, service: str, operation: str, request_count: int = 1, ad_id: str = None, metadata: dict = None
    ) -> CostEntry:
        amount = request_cost(service, request_count)
        details = {"request_count": request_count, **(metadata or {})}
        entry = self.record(service, operation, amount, details, ad_id)
        self.logger.info(f"[Cost] {display_name(service)} - {operation}: ${amount:.4f} ({request_count} request(s))")
        return entry

    def summary(self, since: datetime = None, recent_limit: int = None) -> dict:
        """Totals over the whole queried range plus a most-recent-first entry window."""
        if recent_limit is None:
            recent_limit = self.config.RECENT_ENTRIES_LIMIT

        stmt = select(CostEntry).order_by(CostEntry.created_at.desc())
        if since is not None:
            stmt = stmt.where(CostEntry.created_at >= since)

        with session_scope(self.session_factory) as session:
            entries = list(session.scalars(stmt).all())

        by_service = {}
        for entry in entries:
            stats = by_service.setdefault(
                entry.service, {"display_name": display_name(entry.service), "total_cost": 0.0, "count": 0}
            )
            stats["total_cost"] += entry.cost
            stats["count"] += 1

            details = entry.details or {}
            if "input_tokens" in details and "output_tokens" in details:
                tokens = stats.setdefault("tokens", {"input": 0, "output": 0})
                tokens["input"] += details["input_tokens"]
                tokens["output"] += details["output_tokens"]
            if "image_count" in details:
                stats["images"] = stats.get("images", 0) + details["image_count"]
            if "request_count" in details:
                stats["requests"] = stats.get("requests", 0) + details["request_count"]

        return {
            "total_cost": sum(entry.cost for entry in entries),
            "by_service": by_service,
            "entries": [self._entry_to_dict(entry) for entry in entries[:recent_limit]],
            "period_start": since or datetime.min,
        }

    def costs_for_ad(self, ad_id: str) -> dict:
        with session_scope(self.session_factory) as session:
            ad = AdsRepository(session).get(ad_id)
            if not ad:
                return {"total": 0.0, "breakdown": None, "entries": []}
            entries = session.scalars(
                select(CostEntry).where(CostEntry.ad_id == ad_id).order_by(CostEntry.created_at)
            ).all()
            return {
                "total": ad.generation_cost or 0.0,
                "breakdown": ad.cost_breakdown,
                "entries": [self._entry_to_dict(entry) for entry in entries],
            }

    def costs_for_campaign(self, campaign_id: str) -> dict:
        """Roll up a campaign from each owned Ad's stored total.

        Entries of failed work items have no Ad and are therefore not counted here;
        they still appear in ``summary`` and ``total_spending``.
        """
        with session_scope(self.session_factory) as session:
            ads = AdsRepository(session).list(campaign_id=campaign_id)
            per_ad = [
                {
                    "id": ad.id,
                    "product_name": ad.product_name or "Brand Ad",
                    "cost": ad.generation_cost or 0.0,
                    "breakdown": ad.cost_breakdown,
                }
                for ad in ads
            ]

        total = sum(item["cost"] for item in per_ad)
        ad_count = len(per_ad)
        return {
            "total": total,
            "ad_count": ad_count,
            "average_per_ad": total / ad_count if ad_count else 0.0,
            "ads": per_ad,
        }

    def monthly_usage(self) -> list:
        with session_scope(self.session_factory) as session:
            entries = session.scalars(select(CostEntry).order_by(CostEntry.created_at.desc())).all()

        by_month = {}
        for entry in entries:
            month = entry.created_at.strftime("%Y-%m")
            bucket = by_month.setdefault(month, {"total": 0.0, "by_service": defaultdict(float)})
            bucket["total"] += entry.cost
            bucket["by_service"][entry.service] += entry.cost

        return [
            {"month": month, "total": data["total"], "by_service": dict(data["by_service"])}
            for month, data in by_month.items()
        ]

    def total_spending(self) -> float:
        with session_scope(self.session_factory) as session:
            return session.scalar(select(func.coalesce(func.sum(CostEntry.cost), 0.0)))

    def recalculate_ad_costs(self, ad_id: str) -> AdCostBreakdown:
        """Rebuild an Ad's stored breakdown from its raw ledger entries."""
        with session_scope(self.session_factory) as session:
            repo = AdsRepository(session)
            if not repo.get(ad_id):
                raise NotFoundError(f"Ad not found: {ad_id}")

            breakdown = AdCostBreakdown()
            entries = session.scalars(select(CostEntry).where(CostEntry.ad_id == ad_id)).all()
            for entry in entries:
                if entry.service in SERVICE_CATEGORY:
                    breakdown.add(entry.service, entry.cost)
                else:
                    self.logger.warning(f"Skipping {entry.service} entry {entry.id}: no ad cost category")

            repo.set_costs(ad_id, breakdown.total, breakdown.to_dict())

        self.logger.info(f"[Cost] Recalculated ad {ad_id}: ${breakdown.total:.4f}")
        return breakdown

    @staticmethod
    def _entry_to_dict(entry: CostEntry) -> dict:
        return {
            "id": entry.id,
            "timestamp": entry.created_at,
            "service": entry.service,
            "operation": entry.operation,
            "cost": entry.cost,
            "details": entry.details or {},
            "ad_id": entry.ad_id,
        }
