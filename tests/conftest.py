import io
import json

import pytest
from PIL import Image

from adforge.ad_creation import AdCreator
from adforge.campaign_processing import CampaignOrchestrator
from adforge.campaigns import CampaignService
from adforge.config import Config
from adforge.costs import CostLedger
from adforge.db import init_db, make_engine, make_session_factory, session_scope
from adforge.errors import ImageErrorKind, ImageGenerationError, ProviderError
from adforge.hosting import HostedAsset
from adforge.image_generation import GeneratedImage, PollPolicy
from adforge.image_processing import ImageProcessor
from adforge.logger import AdForgeLogger
from adforge.models import CampaignStatusEnum
from adforge.pipeline import GenerationPipeline
from adforge.prompt_generation import TextResult
from adforge.repositories import BrandProfilesRepository, CampaignsRepository
from adforge.worker import GenerationWorker

DEFAULT_COPY = {
    "headline": "Built for the trail",
    "body": "Gear that keeps up with you.",
    "cta": "Shop Now",
    "hashtags": ["#Acme", "#Outdoors"],
}


def png_bytes(width=64, height=64, color=(200, 40, 40), mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def cutout_bytes(size=100, inner=50) -> bytes:
    """Transparent square with an opaque product in the middle."""
    img = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    offset = (size - inner) // 2
    img.paste(Image.new("RGBA", (inner, inner), (10, 120, 200, 255)), (offset, offset))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FakePromptGenerator:
    def __init__(self):
        self.prompt_error = None
        self.copy_error = None
        self.copy_text = json.dumps(DEFAULT_COPY)
        self.prompt_calls = []
        self.copy_calls = []

    def create_image_prompt(self, context, style, has_reference_image=False, custom_instructions=None):
        self.prompt_calls.append((context, style, has_reference_image, custom_instructions))
        if self.prompt_error:
            raise self.prompt_error
        return TextResult(f"{style} shot of {context.target_name}", input_tokens=100, output_tokens=50)

    def create_ad_copy(self, context, style, custom_instructions=None):
        self.copy_calls.append((context, style, custom_instructions))
        if self.copy_error:
            raise self.copy_error
        return TextResult(self.copy_text, input_tokens=200, output_tokens=80)


class FakeImageGenerator:
    def __init__(self):
        self.fail_calls = set()
        self.always_fail = False
        self.calls = []
        self.fill_calls = []

    def generate_image(self, prompt, width, height, poll_policy=None):
        index = len(self.calls)
        self.calls.append((prompt, width, height))
        if self.always_fail or index in self.fail_calls:
            raise ImageGenerationError("flux-pro-1.1", "rate limited", ImageErrorKind.rate_limited)
        return GeneratedImage(png_bytes(), width, height)

    def fill_image(self, image, mask, prompt, width, height, poll_policy=None):
        self.fill_calls.append((image, mask, prompt, width, height))
        return GeneratedImage(png_bytes(width, height), width, height)


class FakeHost:
    service = "cloudinary"

    def __init__(self):
        self.uploads = {}
        self.deleted = []
        self.fail = False

    def upload(self, image, name):
        if self.fail:
            raise ProviderError(self.service, "HTTP 500")
        public_id = f"adforge/{len(self.uploads)}-{name}"
        url = f"https://res.cloudinary.com/test/image/upload/{public_id}.png"
        self.uploads[url] = image
        return HostedAsset(url=url, public_id=public_id)

    def download(self, url):
        return self.uploads[url]

    def delete(self, public_id):
        self.deleted.append(public_id)


class FakeBackgroundRemover:
    service = "remove-bg"

    def __init__(self):
        self.calls = 0

    def remove_background(self, image_data):
        self.calls += 1
        return cutout_bytes()


@pytest.fixture()
def config():
    return Config()


@pytest.fixture()
def logger():
    return AdForgeLogger("DEBUG", name="adforge-test")


@pytest.fixture()
def session_factory():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def make_brand(session_factory):
    def _make(company_name="Acme", industry="Tools", products=None, **fields):
        if products is None:
            products = [
                {
                    "name": "Trail Boot",
                    "description": "Waterproof hiking boot",
                    "target_audience": "Weekend hikers",
                    "key_benefits": ["Waterproof", "Lightweight"],
                    "promotion_angle": "Ready for any trail",
                    "features": ["Gore-Tex"],
                },
                {"name": "Camp Mug", "description": "Insulated mug", "key_benefits": ["Keeps coffee hot"]},
            ]
        with session_scope(session_factory) as session:
            return BrandProfilesRepository(session).create(
                company_name,
                industry=industry,
                products=products,
                unique_selling_points=["Built to last"],
                **fields,
            )

    return _make


@pytest.fixture()
def make_campaign(session_factory):
    def _make(brand, platforms=("instagram-feed",), selected_products=(), include_brand_ad=True, **fields):
        fields.setdefault("status", CampaignStatusEnum.draft)
        with session_scope(session_factory) as session:
            return CampaignsRepository(session).create(
                brand.id,
                fields.pop("name", "Spring Launch"),
                target_platforms=list(platforms),
                selected_products=list(selected_products),
                include_brand_ad=include_brand_ad,
                **fields,
            )

    return _make


@pytest.fixture()
def ledger(session_factory, logger, config):
    return CostLedger(session_factory, logger, config)


@pytest.fixture()
def prompt_generator():
    return FakePromptGenerator()


@pytest.fixture()
def image_generator():
    return FakeImageGenerator()


@pytest.fixture()
def host():
    return FakeHost()


@pytest.fixture()
def pipeline(prompt_generator, image_generator, host, ledger, config, logger):
    return GenerationPipeline(
        prompt_generator,
        image_generator,
        ImageProcessor(config, logger),
        host,
        ledger,
        config,
        logger,
        PollPolicy(max_attempts=1, interval=0),
    )


@pytest.fixture()
def orchestrator(session_factory, pipeline, config, logger):
    return CampaignOrchestrator(session_factory, pipeline, config, logger)


@pytest.fixture()
def worker(logger):
    worker = GenerationWorker(max_workers=2, logger=logger)
    yield worker
    worker.shutdown()


@pytest.fixture()
def service(session_factory, orchestrator, worker, config, logger):
    return CampaignService(session_factory, orchestrator, worker, config, logger)


@pytest.fixture()
def ad_creator(session_factory, pipeline, config, logger):
    return AdCreator(session_factory, pipeline, FakeBackgroundRemover(), config, logger)
