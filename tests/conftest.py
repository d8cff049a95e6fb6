"""Shared test fixtures for the auth test suite."""

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
import clients.vault_client as vault_module
vault_module._vault_client_instance = None
vault_module._secret_cache.clear()

from auth.config import AuthConfig
from auth.security_logger import SecurityLogger
from auth.storage import MemoryStore


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = "00000000-0000-0000-0000-000000000001"
TEST_USER_EMAIL = "trader-a@brokermail.com"

# Secondary test user - use for cross-user tests
TEST_USER_B_ID = "00000000-0000-0000-0000-000000000002"
TEST_USER_B_EMAIL = "trader-b@brokermail.com"

TEST_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# CLOCK
# =============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = TEST_NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, **kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# =============================================================================
# STORAGE / CONFIG FIXTURES
# =============================================================================


@pytest.fixture
def store() -> MemoryStore:
    """Fresh in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def config() -> AuthConfig:
    """Default auth config."""
    return AuthConfig()


@pytest.fixture
def security_logger():
    """Security logger that records calls instead of writing to Postgres."""
    return Mock(spec=SecurityLogger)


@pytest.fixture
def test_user_id() -> str:
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> str:
    return TEST_USER_B_ID
