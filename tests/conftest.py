from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import Settings  # noqa: E402
from dashboard import Dashboard  # noqa: E402
from fake_api import FakeStore, create_fake_api  # noqa: E402

API_URL = "http://api.test/api/v1"


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def transport(store: FakeStore) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=create_fake_api(store))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        api_url=API_URL,
        token_path=tmp_path / "token.json",
        debounce_seconds=0.02,
        poll_interval_seconds=30.0,
        page_size=10,
    )


@pytest.fixture
def dashboard(settings: Settings, transport: httpx.ASGITransport) -> Dashboard:
    return Dashboard(settings, transport)
