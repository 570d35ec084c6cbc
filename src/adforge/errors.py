"""Exception types shared across the generator."""

from enum import Enum


class AdForgeError(Exception):
    """Base class for all adforge errors."""


class ValidationError(AdForgeError):
    """Rejected input; the campaign is left unchanged."""


class NotFoundError(AdForgeError):
    """A referenced record does not exist."""


class PlatformNotFoundError(ValidationError):
    def __init__(self, platform_id: str):
        super().__init__(f"Unknown platform: {platform_id}")
        self.platform_id = platform_id


class ImageErrorKind(str, Enum):
    rate_limited = "rate_limited"
    policy_rejected = "policy_rejected"
    timeout = "timeout"
    unavailable = "unavailable"
    unknown = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ImageErrorKind.rate_limited, ImageErrorKind.timeout, ImageErrorKind.unavailable)


class ProviderError(AdForgeError):
    """An external provider call failed (transport, auth or response parsing)."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service


class ImageGenerationError(ProviderError):
    """Image synthesis failed; ``kind`` keeps the provider's classification."""

    def __init__(self, service: str, message: str, kind: ImageErrorKind = ImageErrorKind.unknown):
        super().__init__(service, message)
        self.kind = kind


class PipelineStage(str, Enum):
    prompt = "prompt_synthesis"
    image = "image_synthesis"
    hosting = "hosting"
    copy = "copy_synthesis"
    persistence = "persistence"
    internal = "internal"
