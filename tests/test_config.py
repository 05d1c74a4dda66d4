"""
tests/test_config.py — YAML configuration loader
=================================================
"""

from __future__ import annotations

import pytest

from t4g.config import POLICY_IGNORE, T4GConfig, load_config


class TestLoadConfig:
    def test_missing_default_file_yields_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("T4G_CONFIG", raising=False)
        assert load_config() == T4GConfig()

    def test_missing_explicit_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_reads_values_and_auth0_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "coins_per_action: 2\n"
            "challenge_points_policy: ignore\n"
            "lock_timeout_seconds: 1.5\n"
            "auth0:\n"
            "  user:\n"
            "    domain: users.example.auth0.com\n"
            "    client_id: abc\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.coins_per_action == 2
        assert cfg.challenge_points_policy == POLICY_IGNORE
        assert cfg.lock_timeout_seconds == 1.5
        assert cfg.auth0_user.domain == "users.example.auth0.com"
        assert cfg.auth0_user.frontend_url == "https://t4g.fun"
        assert cfg.auth0_tenant == T4GConfig().auth0_tenant

    def test_env_var_points_at_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("recent_actions_limit: 3\n", encoding="utf-8")
        monkeypatch.setenv("T4G_CONFIG", str(path))
        assert load_config().recent_actions_limit == 3

    @pytest.mark.parametrize("body", [
        "coins_per_action: 0\n",
        "challenge_points_policy: sometimes\n",
    ])
    def test_rejects_invalid_values(self, tmp_path, body):
        path = tmp_path / "config.yaml"
        path.write_text(body, encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)
