"""
Tests for settings validation, log scrubbing, and the error taxonomy.
"""
import json
import logging

import pytest
from pydantic import ValidationError as SettingsError

from quotereview.core import errors
from quotereview.core.config import Settings
from quotereview.core.logging import StructuredFormatter, _scrub_message, _scrub_value

STRONG_KEY = "k" * 40


def _settings(**overrides):
    values = {"DEBUG": False, "SECRET_KEY": STRONG_KEY, "POSTGRES_PASSWORD": "a-real-password"}
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestSettings:

    def test_database_url_assembled_from_parts(self):
        s = _settings(DATABASE_URL=None, POSTGRES_HOST="db", POSTGRES_DB="quotes")
        assert s.DATABASE_URL == "postgresql://quotereview:a-real-password@db:5432/quotes"

    def test_explicit_database_url_wins(self):
        assert _settings(DATABASE_URL="sqlite://").DATABASE_URL == "sqlite://"

    def test_weak_secret_rejected_in_production(self):
        with pytest.raises(SettingsError):
            _settings(SECRET_KEY="secret")

    def test_weak_secret_allowed_in_debug(self):
        with pytest.warns(UserWarning):
            assert _settings(DEBUG=True, SECRET_KEY="secret").SECRET_KEY == "secret"

    def test_seed_demo_requires_debug(self):
        with pytest.raises(SettingsError):
            _settings(SEED_DEMO=True)
        assert _settings(DEBUG=True, SEED_DEMO=True).SEED_DEMO is True

    def test_workflow_defaults(self):
        s = _settings()
        assert s.DUE_DATE_OFFSET_DAYS == 45
        assert s.REVISION_OVERFLOW_MARKER == "1"

    def test_empty_overflow_marker_rejected(self):
        with pytest.raises(SettingsError):
            _settings(REVISION_OVERFLOW_MARKER="")


class TestLogging:

    def test_message_scrubbing(self):
        assert "hunter2" not in _scrub_message("login failed password=hunter2")
        assert "abc123" not in _scrub_message('{"token": "abc123"}')

    def test_detail_scrubbing(self):
        scrubbed = _scrub_value({"email": "a@test.com", "password": "x", "nested": [{"token": "t"}]})
        assert scrubbed == {
            "email": "a@test.com", "password": "***REDACTED***", "nested": [{"token": "***REDACTED***"}],
        }

    def test_structured_formatter_includes_context(self):
        record = logging.LogRecord("audit", logging.INFO, __file__, 1, "AUDIT: approved", None, None)
        record.user_id = 4
        record.document_number = "D1"
        entry = json.loads(StructuredFormatter().format(record))
        assert entry["message"] == "AUDIT: approved"
        assert entry["user_id"] == 4
        assert entry["document_number"] == "D1"
        assert "entity_id" not in entry


class TestErrors:

    @pytest.mark.parametrize("exc_class,code", [
        (errors.ValidationError, 400),
        (errors.NotFoundError, 404),
        (errors.AccessDeniedError, 403),
        (errors.ConflictError, 409),
        (errors.DependencyFailure, 502),
    ])
    def test_status_codes(self, exc_class, code):
        exc = exc_class("boom")
        assert isinstance(exc, errors.QuotationError)
        assert exc.status_code == code
        assert exc.message == "boom"
        assert exc.detail == {}


class TestSeed:

    def test_creates_linked_demo_users(self, db):
        from quotereview.db.seed import seed_demo_data

        buyer, seller = seed_demo_data(db)
        assert seller.onboarded_by == buyer.id
        assert buyer.role == "buyer"

        again_buyer, again_seller = seed_demo_data(db)
        assert (again_buyer.id, again_seller.id) == (buyer.id, seller.id)
