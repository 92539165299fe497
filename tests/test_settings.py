"""Tests for environment-driven configuration."""

import pytest

from docengine.config import EngineSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestEngineSettings:

    def test_defaults(self):
        settings = EngineSettings()
        assert settings.default_due_days == 30
        assert settings.number_padding == 4
        assert settings.usage_flush_inline is True

    def test_admin_emails_normalized(self):
        settings = EngineSettings(admin_emails=" Boss@Example.com, ,ops@example.com ")
        assert settings.admin_emails_list == ["boss@example.com", "ops@example.com"]

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("DOCENGINE_DEFAULT_DUE_DAYS", "14")
        assert get_settings().engine.default_due_days == 14

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            EngineSettings(usage_retry_attempts=0)


class TestValidateAllSettings:

    def test_missing_sheets_configuration_reported(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        results = validate_all_settings()
        assert results["engine"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results

    def test_sheets_configured(self, monkeypatch, tmp_path):
        credentials = tmp_path / "service-account.json"
        credentials.write_text("{}")
        monkeypatch.setenv("GOOGLE_SHEETS_CREDENTIALS_PATH", str(credentials))
        monkeypatch.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-123")
        assert validate_all_settings()["google_sheets"] is True
