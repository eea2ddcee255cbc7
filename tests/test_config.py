"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from vcarpool.config import DEFAULT_BASE_URL, ClientSettings


class TestFromEnv:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "VCARPOOL_API_URL",
            "VCARPOOL_READ_TIMEOUT",
            "VCARPOOL_WRITE_TIMEOUT",
            "VCARPOOL_ENV",
            "VCARPOOL_LOGIN_URL",
            "VCARPOOL_TOKEN_FILE",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = ClientSettings.from_env()
        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.read_timeout < settings.write_timeout
        assert settings.environment == "development"
        assert settings.token_file is None
        assert not settings.is_production

    def test_overrides(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("VCARPOOL_API_URL", "https://api.carpool.test/api/")
        monkeypatch.setenv("VCARPOOL_READ_TIMEOUT", "4")
        monkeypatch.setenv("VCARPOOL_WRITE_TIMEOUT", "12.5")
        monkeypatch.setenv("VCARPOOL_ENV", "production")
        monkeypatch.setenv("VCARPOOL_LOGIN_URL", "/signin")
        monkeypatch.setenv("VCARPOOL_TOKEN_FILE", str(tmp_path / "creds.json"))

        settings = ClientSettings.from_env()
        assert settings.base_url == "https://api.carpool.test/api"
        assert settings.read_timeout == 4.0
        assert settings.write_timeout == 12.5
        assert settings.is_production
        assert settings.login_url == "/signin"
        assert settings.token_file == tmp_path / "creds.json"

    def test_bad_timeout_falls_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VCARPOOL_READ_TIMEOUT", "soon")
        assert ClientSettings.from_env().read_timeout == 10.0
