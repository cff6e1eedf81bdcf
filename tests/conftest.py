import os

# Point the module-level app in app.py at throwaway backends BEFORE it is imported
os.environ['FLASK_ENV'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite://'
os.environ['REDIS_URL'] = 'redis://localhost:6379/15'
os.environ['CACHE_TIMEOUT_SECONDS'] = '0.1'

import logging
from datetime import datetime
from unittest.mock import patch

import fakeredis
import pytest
from flask import Flask

from app import create_app
from beacon.analytics.models import Event
from beacon.db.models import Base

# Configure basic logging for fixture setup/teardown visibility
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

ADMIN_TOKEN = 'test-admin-token'

# --- Core App Fixtures --- #

class TestingConfig:
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    FLASK_ENV = 'testing'
    API_VERSION = 'v1'
    FRONTEND_URL = 'http://localhost:3000'
    LOG_LEVEL = 'DEBUG' # More verbose logging for tests
    LOG_FILE = None

    # In-memory SQLite; create_session_factory switches to a StaticPool so all
    # sessions share one connection
    DATABASE_URL = 'sqlite://'
    DB_CREATE_TABLES = True
    DB_POOL_SIZE = 5
    EVENT_STORE_TIMEOUT_SECONDS = 5

    # redis.from_url is patched to return fakeredis in the app fixture
    REDIS_URL = 'redis://localhost:6379/1'
    CACHE_TIMEOUT_SECONDS = 0.5
    EVENT_SUMMARY_TTL_SECONDS = 300
    USER_STATS_TTL_SECONDS = 600
    TIME_SERIES_MAX_BUCKETS = 100

    API_KEY_TTL_DAYS = 365
    ADMIN_TOKEN = ADMIN_TOKEN

    RATE_LIMIT_WINDOW_SECONDS = 60
    COLLECT_RATE_LIMIT = 100
    ANALYTICS_RATE_LIMIT = 50
    HEALTH_RATE_LIMIT = 10


@pytest.fixture(scope='session')
def app():
    """Session-wide test Flask application backed by SQLite and fakeredis."""
    log.info("--- Creating Test App with TestingConfig ---")
    with patch('redis.from_url') as mock_redis_from_url:
        mock_redis_instance = fakeredis.FakeStrictRedis(decode_responses=True)
        mock_redis_from_url.return_value = mock_redis_instance
        log.info("Patched redis.from_url to return FakeStrictRedis instance.")

        _app = create_app(config_object=TestingConfig)

    assert _app.redis_client is mock_redis_instance
    yield _app
    log.info("--- Tearing Down Test App ---")

@pytest.fixture(scope='function', autouse=True)
def clean_state(app):
    """Every test starts with empty tables and an empty Redis."""
    Base.metadata.drop_all(app.db_engine)
    Base.metadata.create_all(app.db_engine)
    app.redis_client.flushdb()
    yield
    app.redis_client.flushdb()

@pytest.fixture()
def client(app: Flask):
    """A test client for the app."""
    return app.test_client()

@pytest.fixture(scope='function')
def redis_client(app):
    """The fakeredis instance the app is wired to."""
    return app.redis_client

# --- Application / Credential Fixtures --- #

@pytest.fixture
def registered_app(app):
    """Registers an application and returns (app_info, plaintext_api_key)."""
    return app.identity_provider.register_application("Test App", "https://example.com", "owner@example.com")

@pytest.fixture
def api_headers(registered_app):
    _, api_key = registered_app
    return {'X-API-Key': api_key}

@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {ADMIN_TOKEN}'}

# --- Clock / Sample Data Fixtures --- #

class FakeClock:
    """Controllable replacement for time.time."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

@pytest.fixture
def fake_clock():
    return FakeClock()

@pytest.fixture
def make_event():
    """Factory for in-memory Event values."""
    def _make_event(event_name="page_view", application_id=1, timestamp=None, event_id=None, **kwargs):
        return Event(
            event_id=event_id,
            application_id=application_id,
            event_name=event_name,
            url=kwargs.pop("url", "https://example.com/"),
            timestamp=timestamp or datetime(2024, 1, 1, 12, 0, 0),
            **kwargs
        )
    return _make_event
