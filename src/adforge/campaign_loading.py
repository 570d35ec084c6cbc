from datetime import datetime, timezone
from pathlib import Path

import yaml

from .config import Config
from .errors import ValidationError
from .logger import AdForgeLogger

BRAND_FIELDS = (
    "url",
    "personality",
    "target_audience",
    "voice_tone",
    "visual_style",
    "industry",
    "unique_selling_points",
    "products",
)


class CampaignLoader:
    """Handles loading and validation of campaign briefs."""

    def __init__(self, config: Config, logger: AdForgeLogger):
        self.config = config
        self.logger = logger

    def load_campaign_briefs(self, campaigns_dir: str = None):
        """Load all YAML brief files from campaigns directory."""
        if campaigns_dir is None:
            campaigns_dir = self.config.CAMPAIGNS_DIR

        briefs = []
        campaigns_path = Path(campaigns_dir)

        if not campaigns_path.exists():
            self.logger.error(f"Campaigns directory not found: {campaigns_dir}")
            return briefs

        for campaign_dir in sorted(campaigns_path.iterdir()):
            if not campaign_dir.is_dir():
                continue

            # Skip campaigns a previous run already finished
            meta = self._read_meta(campaign_dir)
            if meta.get("status") == "done":
                self.logger.info(f"Skipping completed campaign: {campaign_dir.name}")
                continue

            brief_file = campaign_dir / self.config.BRIEF_FILE
            if not brief_file.exists():
                continue

            try:
                with open(brief_file, "r") as f:
                    brief_data = yaml.safe_load(f) or {}
                self.validate_brief(brief_data, brief_file)
            except (yaml.YAMLError, ValidationError) as e:
                self.logger.error(f"Failed to load {brief_file}: {e}")
                continue

            brief_data["campaign_name"] = brief_data["campaign"].get("name") or campaign_dir.name
            brief_data["campaign_path"] = str(campaign_dir)
            briefs.append(brief_data)
            self.logger.info(f"Loaded campaign: {campaign_dir.name}")

        return briefs

    @staticmethod
    def validate_brief(brief: dict, source=None) -> None:
        brand = brief.get("brand")
        campaign = brief.get("campaign")
        if not isinstance(brand, dict) or not brand.get("company_name"):
            raise ValidationError(f"{source}: brand.company_name is required")
        if not isinstance(campaign, dict) or not campaign.get("platforms"):
            raise ValidationError(f"{source}: campaign.platforms is required")
        if not isinstance(brand.get("products", []), list):
            raise ValidationError(f"{source}: brand.products must be a list")

    @staticmethod
    def brand_fields(brief: dict) -> dict:
        """Map a brief's brand section onto BrandProfile columns."""
        brand = brief["brand"]
        fields = {key: brand[key] for key in BRAND_FIELDS if brand.get(key) is not None}
        colors = brand.get("colors") or {}
        for name in ("primary", "secondary", "accent"):
            if colors.get(name):
                fields[f"{name}_color"] = colors[name]
        return fields

    def mark_done(self, brief: dict, summary: dict = None) -> None:
        """Record in meta.yaml that the campaign was processed, so later runs skip it."""
        meta_file = Path(brief["campaign_path"]) / self.config.META_FILE
        meta = {
            "status": "done",
            "finished_at": datetime.now(timezone.utc).isoformat(),
            **(summary or {}),
        }
        with open(meta_file, "w") as f:
            yaml.safe_dump(meta, f, sort_keys=False)
        self.logger.info(f"Marked campaign {brief['campaign_name']} as done")

    def _read_meta(self, campaign_dir: Path) -> dict:
        meta_file = campaign_dir / self.config.META_FILE
        if not meta_file.exists():
            return {}
        try:
            with open(meta_file, "r") as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            self.logger.warning(f"Failed to parse {self.config.META_FILE} for {campaign_dir.name}: {e}")
            return {}
