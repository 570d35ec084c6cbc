import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Configuration settings for the ad generator."""

    # LLM Settings (OpenAI-compatible endpoint)
    LLM_BASE_URL = "https://openrouter.ai/api/v1"
    LLM_MODEL = "google/gemini-3-flash-preview"
    LLM_SERVICE = "gemini-3-flash"
    PROMPT_TEMPERATURE = 0.75
    PROMPT_MAX_TOKENS = 400
    COPY_TEMPERATURE = 0.85
    COPY_MAX_TOKENS = 500

    # Image Generation (Flux)
    FLUX_API_URL = "https://api.bfl.ml/v1"
    FLUX_MODEL = "flux-pro-1.1"
    FLUX_FILL_MODEL = "flux-pro-1.0-fill"
    FLUX_STEPS = 25
    FLUX_GUIDANCE = 3
    FLUX_SAFETY_TOLERANCE = 2
    FLUX_MIN_DIMENSION = 256
    FLUX_MAX_DIMENSION = 1440
    FLUX_DIMENSION_STEP = 32
    POLL_MAX_ATTEMPTS = 60
    POLL_INTERVAL = 1.0

    # Other Providers
    REMOVE_BG_API_URL = "https://api.remove.bg/v1.0/removebg"
    CLOUDINARY_FOLDER = "adforge"
    HTTP_TIMEOUT = 60

    # Image Processing
    EXPORT_FORMAT = "png"
    AD_CANVAS_SIZE = 1024
    PRODUCT_SCALE = 0.6

    # Storage
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///adforge.db")

    # Cost Ledger
    RECENT_ENTRIES_LIMIT = 100

    # Orchestration
    STALE_GENERATION_TTL_MINUTES = 60
    WORKER_MAX_WORKERS = 4
    WORKER_ERROR_HISTORY = 100

    # File Structure
    CAMPAIGNS_DIR = "campaigns"
    BRIEF_FILE = "brief.yaml"
    META_FILE = "meta.yaml"

    # Logging
    LOG_LEVEL = os.getenv("ADFORGE_LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("ADFORGE_LOG_FILE")
