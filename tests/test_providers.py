import cloudinary.uploader
import pytest
from cloudinary.exceptions import Error as CloudinaryError

from adforge.background_removal import BackgroundRemover
from adforge.config import Config
from adforge.errors import ProviderError
from adforge.hosting import CloudinaryHost


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, content=b"", text=""):
        self.status_code = status_code
        self._json = json_data
        self.content = content
        self.text = text

    def json(self):
        if self._json is None:
            raise ValueError("no json")
        return self._json


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def get(self, url, **kwargs):
        return self.post(url, **kwargs)


def test_upload_returns_hosted_asset(logger, monkeypatch):
    calls = []

    def fake_upload(file, **options):
        calls.append((file.read(), options))
        return {"secure_url": "https://res.cloudinary.com/demo/x.png", "public_id": "adforge/x"}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    host = CloudinaryHost(Config(), logger)

    asset = host.upload(b"png", "acme-tiktok.png")

    assert asset.url == "https://res.cloudinary.com/demo/x.png"
    assert asset.public_id == "adforge/x"
    data, options = calls[0]
    assert data == b"png"
    assert options["folder"] == "adforge"
    assert options["public_id"].endswith("-acme-tiktok")
    assert options["resource_type"] == "image"


def test_upload_failure_raises_provider_error(logger, monkeypatch):
    def fake_upload(file, **options):
        raise CloudinaryError("Invalid API key")

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    host = CloudinaryHost(Config(), logger)

    with pytest.raises(ProviderError, match="Invalid API key") as exc_info:
        host.upload(b"png", "x")
    assert exc_info.value.service == "cloudinary"


def test_delete(logger, monkeypatch):
    destroyed = []
    monkeypatch.setattr(
        cloudinary.uploader, "destroy", lambda public_id: destroyed.append(public_id) or {"result": "ok"}
    )

    CloudinaryHost(Config(), logger).delete("adforge/x")

    assert destroyed == ["adforge/x"]


def test_delete_failure_raises_provider_error(logger, monkeypatch):
    def fake_destroy(public_id):
        raise CloudinaryError("Unexpected error")

    monkeypatch.setattr(cloudinary.uploader, "destroy", fake_destroy)

    with pytest.raises(ProviderError):
        CloudinaryHost(Config(), logger).delete("adforge/x")


def test_download(logger):
    host = CloudinaryHost(Config(), logger, session=FakeSession(FakeResponse(content=b"image")))

    assert host.download("https://res.cloudinary.com/demo/x.png") == b"image"


def test_remove_background(logger):
    session = FakeSession(FakeResponse(content=b"cutout"))
    remover = BackgroundRemover(Config(), logger, session=session)

    assert remover.remove_background(b"photo") == b"cutout"
    url, kwargs = session.posts[0]
    assert url == Config.REMOVE_BG_API_URL
    assert kwargs["files"]["image_file"][1] == b"photo"


def test_remove_background_error_message(logger):
    session = FakeSession(FakeResponse(status_code=402, json_data={"errors": [{"title": "Insufficient credits"}]}))
    remover = BackgroundRemover(Config(), logger, session=session)

    with pytest.raises(ProviderError, match="Insufficient credits"):
        remover.remove_background(b"photo")
