"""
Tests for environment-driven settings.
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from brokerage.core.config import Settings


class TestSettings:
    def test_business_defaults(self):
        settings = Settings()

        assert settings.default_tax_rate == Decimal("10")
        assert settings.invoice_due_days == 30
        assert settings.dispatch_cost_estimate_ratio == Decimal("0.9")
        assert settings.kpi_weekly_target == 100
        assert settings.kpi_monthly_target == 350
        assert settings.trend_max_days == 90
        assert settings.enforce_forward_status is False

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("APP_DEFAULT_TAX_RATE", "8")
        monkeypatch.setenv("APP_ENFORCE_FORWARD_STATUS", "true")

        settings = Settings()

        assert settings.default_tax_rate == Decimal("8")
        assert settings.enforce_forward_status is True

    def test_cors_origins_from_comma_string(self):
        settings = Settings(cors_origins="http://a.test, http://b.test")

        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    def test_rejects_non_postgres_url(self):
        with pytest.raises(ValidationError):
            Settings(database_url="mysql://localhost/brokerage")

    def test_default_secret_rejected_in_production(self):
        with pytest.raises(ValidationError):
            Settings(environment="production")
