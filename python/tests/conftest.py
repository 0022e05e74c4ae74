"""Pytest configuration and fixtures for FinTrack host tests.

Test isolation strategy:
- Every app is built by create_app() from an explicit Settings object,
  never from the process environment
- The settings cache is cleared around each test that touches main()
- Controllers used by scenario tests are plain APIRouters from tests.helpers
"""

import sys
from collections.abc import Generator
from pathlib import Path

# Add repo root to sys.path for importing top-level packages (e.g., apps)
_repo_root = Path(__file__).parent.parent.parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from fintrack.app import add_request_id_middleware, create_app
from fintrack.config import Settings, clear_settings_cache
from tests.helpers import make_settings


@pytest.fixture(autouse=True)
def _isolate_settings_cache() -> Generator[None, None, None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def dev_settings() -> Settings:
    """Development settings with no secure endpoint."""
    return make_settings(FINTRACK_ENV="development")


@pytest.fixture
def prod_settings() -> Settings:
    """Production settings with no secure endpoint."""
    return make_settings(FINTRACK_ENV="production")


@pytest.fixture
def dev_app(dev_settings: Settings) -> FastAPI:
    app = create_app(dev_settings)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def prod_app(prod_settings: Settings) -> FastAPI:
    app = create_app(prod_settings)
    add_request_id_middleware(app, log_requests=False)
    return app


@pytest.fixture
def client(dev_app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a test client for a development-mode app."""
    with TestClient(dev_app) as client:
        yield client


@pytest.fixture
def prod_client(prod_app: FastAPI) -> Generator[TestClient, None, None]:
    """Provide a test client for a production-mode app."""
    with TestClient(prod_app) as client:
        yield client
