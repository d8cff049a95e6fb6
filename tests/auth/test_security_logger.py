"""Tests for SecurityLogger - append-only audit trail."""

import logging
from unittest.mock import Mock

import psycopg2
import pytest

from auth.security_logger import SecurityEvent, SecurityLogger
from clients.postgres_client import PostgresClient


@pytest.fixture
def postgres():
    return Mock(spec=PostgresClient)


@pytest.fixture
def audit(postgres):
    return SecurityLogger(postgres)


class TestLog:
    def test_inserts_event_row(self, audit, postgres):
        audit.log(SecurityEvent.LOGIN_SUCCEEDED, email="a@x.com", user_id="u1", provider="gotrue")

        query, params = postgres.execute_returning.call_args.args
        assert "INSERT INTO security_events" in query
        assert params[:4] == ("login_succeeded", "a@x.com", "u1", "gotrue")
        assert params[4] is None

    def test_details_are_wrapped_as_json(self, audit, postgres):
        audit.log(SecurityEvent.LOGIN_FAILED, email="a@x.com", details={"reason": "invalid_credentials"})

        details = postgres.execute_returning.call_args.args[1][4]
        assert details.adapted == {"reason": "invalid_credentials"}

    def test_database_failure_does_not_raise(self, audit, postgres, caplog):
        postgres.execute_returning.side_effect = psycopg2.OperationalError("connection lost")

        with caplog.at_level(logging.ERROR, logger="auth.security_logger"):
            audit.log(SecurityEvent.SIGNED_OUT, user_id="u1")

        assert "signed_out" in caplog.text

    def test_other_errors_propagate(self, audit, postgres):
        postgres.execute_returning.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            audit.log(SecurityEvent.SIGNED_OUT, user_id="u1")
