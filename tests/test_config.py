"""Tests for layered configuration loading."""

import json

from bex.config.loader import convert_keys, load_config, merge_first_wins, save_config
from bex.config.schema import Config
from bex.providers.base import AttachmentPolicy, ProviderMode


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLayers:
    def test_defaults_when_no_layers(self, tmp_path):
        config = load_config([tmp_path / "missing.json"], environ={})

        assert config.agents.defaults.max_steps == 20
        assert config.gateway.primary == "gemini"
        assert config.gateway.mode == ProviderMode.AUTO
        assert config.gateway.attachment_policy == AttachmentPolicy.CLEAR_ALWAYS

    def test_first_layer_wins(self, tmp_path):
        local = _write(tmp_path / "local.json", {"providers": {"gemini": {"apiKey": "local-key"}}})
        user = _write(
            tmp_path / "user.json",
            {"providers": {"gemini": {"apiKey": "user-key"}, "deepseek": {"apiKey": "ds-key"}}},
        )

        config = load_config([local, user], environ={})

        assert config.providers.gemini.api_key == "local-key"
        assert config.providers.deepseek.api_key == "ds-key"

    def test_env_fills_only_missing_keys(self, tmp_path):
        layer = _write(tmp_path / "c.json", {"providers": {"gemini": {"apiKey": "file-key"}}})

        config = load_config(
            [layer],
            environ={"GEMINI_API_KEY": "env-gemini", "DEEPSEEK_API_KEY": "env-deepseek"},
        )

        assert config.providers.gemini.api_key == "file-key"
        assert config.providers.deepseek.api_key == "env-deepseek"

    def test_google_api_key_alias(self, tmp_path):
        config = load_config([], environ={"GOOGLE_API_KEY": "g"})
        assert config.is_available("gemini")
        assert not config.is_available("deepseek")

    def test_broken_layer_is_skipped(self, tmp_path):
        broken = tmp_path / "broken.json"
        broken.write_text("{oops", encoding="utf-8")
        good = _write(tmp_path / "good.json", {"agents": {"defaults": {"maxSteps": 7}}})

        config = load_config([broken, good], environ={})

        assert config.agents.defaults.max_steps == 7

    def test_server_labels_kept_verbatim(self, tmp_path):
        layer = _write(tmp_path / "c.json", {"tools": {"mcp": {"servers": {"myFiles": "http://localhost:4000"}}}})

        config = load_config([layer], environ={})

        assert config.tools.mcp.servers == {"myFiles": "http://localhost:4000"}

    def test_save_round_trips(self, tmp_path):
        config = Config()
        config.agents.defaults.max_steps = 9
        config.tools.mcp.servers = {"myFiles": "http://x"}
        path = tmp_path / "config.json"

        save_config(config, path)
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["agents"]["defaults"]["maxSteps"] == 9
        assert data["tools"]["mcp"]["servers"] == {"myFiles": "http://x"}

        reloaded = load_config([path], environ={})
        assert reloaded.agents.defaults.max_steps == 9
        assert reloaded.tools.mcp.servers == {"myFiles": "http://x"}


class TestHelpers:
    def test_merge_first_wins(self):
        assert merge_first_wins({"a": {"x": 1}}, {"a": {"x": 2, "y": 3}, "b": 4}) == {"a": {"x": 1, "y": 3}, "b": 4}

    def test_convert_keys(self):
        assert convert_keys({"apiKey": "k", "extraHeaders": {"X-Trace": "1"}}) == {
            "api_key": "k",
            "extra_headers": {"X-Trace": "1"},
        }
