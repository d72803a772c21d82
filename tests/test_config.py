"""
tests/test_config.py — YAML Configuration Loader Tests
========================================================
"""

from __future__ import annotations

import pytest

from mytroupe.config import DEFAULT_GOOGLE_SCOPES, load_config


class TestLoadConfig:
    def test_reads_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "google_credentials_path: /secrets/sa.json\n"
            "google_scopes: [https://www.googleapis.com/auth/drive.readonly]\n"
            "sync_lease_minutes: 45\n",
            encoding="utf-8",
        )

        cfg = load_config(path)

        assert cfg.google_credentials_path == "/secrets/sa.json"
        assert cfg.google_scopes == ("https://www.googleapis.com/auth/drive.readonly",)
        assert cfg.sync_lease_minutes == 45

    def test_defaults_and_env_fallback(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "/env/sa.json")
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        cfg = load_config(path)

        assert cfg.google_credentials_path == "/env/sa.json"
        assert cfg.google_scopes == DEFAULT_GOOGLE_SCOPES
        assert cfg.sync_lease_minutes == 30

    def test_missing_credentials(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("sync_lease_minutes: 10\n", encoding="utf-8")

        with pytest.raises(KeyError):
            load_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "absent.yaml")

    def test_config_is_frozen(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "/env/sa.json")
        path = tmp_path / "config.yaml"
        path.write_text("{}\n", encoding="utf-8")
        cfg = load_config(path)

        with pytest.raises(AttributeError):
            cfg.sync_lease_minutes = 1
