from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterator
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from threatrelay.dependencies import reset_cached_dependencies
from threatrelay.services.country_resolver import CountryResolver

_BARE_ENV_NAMES: tuple[str, ...] = (
    "SOURCE_URL",
    "MAX_IMAGE_BYTES",
    "DISCORD_WEBHOOK_URL",
    "DISCORD_ROLE_ID",
)

REPORTS_DOCUMENT = """<!doctype html>
<html>
<body>
<nav><a href="https://tracker.example.com/">Home</a></nav>
<div class="modal fade" id="modal-content-101" tabindex="-1">
  <div class="modal-body">
    <h5 class="modal-title text-white">Acme Corp customer database leaked</h5>
    <img class="flag-img" src="https://flagcdn.com/24x18/ru.png" alt="RU">
    <img src="https://cdn.example.com/shots/101.png" alt="screenshot">
    <div class="detail-label">THREAT ACTOR</div>
    <div class="detail-val">ShadowCrew</div>
    <div class="detail-label">TIMESTAMP</div>
    <div class="detail-val">2025-03-05</div>
    <div class="detail-label">ORIGIN</div>
    <div class="detail-val"><img class="flag-img" src="https://flagcdn.com/16x12/ru.png"> Russia</div>
    <span class="detail-label">SECTOR:</span> <span class="tech-badge">Finance</span>
    <a href="https://t.me/shadowcrew/12">Channel post</a>
    <a href="https://breachforums.st/Thread-Acme-Corp">Forum thread</a>
  </div>
</div>
<div class="modal fade" id="modal-content-205">
  <div class="card">
    <h6 class="card-title-tech">Ministry portal defaced</h6>
    <div class="meta"><strong>ACTOR:</strong> Team &amp; Co</div>
    <div class="meta"><strong>DATE:</strong> 2025-02-30</div>
    <div class="meta"><strong>TARGET:</strong> Americans</div>
    <div class="sector-badge">&gt; Government</div>
    <a href="https://news.example.org/story">Source</a>
    <a href="https://xss.is/threads/1234/">Discussion</a>
  </div>
</div>
<div class="modal fade" id="modal-content-draft">
  <h6 class="card-title-tech">Unpublished draft</h6>
</div>
</body>
</html>
"""


@pytest.fixture(autouse=True)
def _isolated_environment(  # pyright: ignore[reportUnusedFunction]
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Iterator[None]:
    for name in list(os.environ):
        if name.startswith("THREATRELAY_") or name in _BARE_ENV_NAMES:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("THREATRELAY_DATA_DIR", str(tmp_path / "runtime-data"))
    monkeypatch.chdir(tmp_path)
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()
    for logger_name in ("threatrelay", "threatrelay.telemetry"):
        logger = logging.getLogger(logger_name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)


@pytest.fixture
def reports_document() -> str:
    return REPORTS_DOCUMENT


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    def _make(
        width: int,
        height: int,
        *,
        image_format: str = "PNG",
        noise: bool = True,
        **save_options: object,
    ) -> bytes:
        if noise:
            image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
        else:
            image = Image.new("RGB", (width, height), color=(30, 120, 200))
        buffer = BytesIO()
        image.save(buffer, format=image_format, **save_options)
        return buffer.getvalue()

    return _make


@pytest.fixture(scope="session")
def country_resolver() -> CountryResolver:
    return CountryResolver()
