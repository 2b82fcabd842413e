"""Tests for router configuration loading."""

import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from step_router.core.config import RouterConfig, clear_config_cache, load_config
from step_router.errors import ConfigError
from step_router.workflow.executor import MatchPolicy, TaskRouter
from step_router.workflow.patterns import ArrayPolicy
from step_router.workflow.steps import StepRegistry


@pytest.fixture(autouse=True)
def _clean_cache():
    clear_config_cache()
    yield
    clear_config_cache()


def _write_config(tmp_path, body):
    path = tmp_path / "step-router.yaml"
    path.write_text(textwrap.dedent(body))
    return path


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")
        assert config.router.max_cycles == 1000
        assert config.router.max_redo == 500
        assert config.matching.array_policy == ArrayPolicy.POSITIONAL

    def test_values_from_yaml(self, tmp_path):
        path = _write_config(tmp_path, """
            matching:
              array_policy: existential
            router:
              match_policy: first
              max_cycles: 50
            scheduler:
              archive_dir: /tmp/archive
            config_values:
              slack_channel: "#releases"
        """)
        config = load_config(path)

        assert config.matching.array_policy == ArrayPolicy.EXISTENTIAL
        assert config.router.match_policy == "first"
        assert config.router.max_cycles == 50
        assert config.scheduler.archive_dir == Path("/tmp/archive")
        assert config.lookup("slack_channel") == "#releases"

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RELEASE_CHANNEL", "#ship-it")
        path = _write_config(tmp_path, """
            config_values:
              slack_channel: ${RELEASE_CHANNEL}
              api_key: ${UNSET_STEP_ROUTER_KEY}
        """)
        config = load_config(path)

        assert config.lookup("slack_channel") == "#ship-it"
        assert config.lookup("api_key") == "${UNSET_STEP_ROUTER_KEY}"

    def test_inline_reference_and_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RELEASE_HOST", "api.github.com")
        monkeypatch.delenv("UNSET_STEP_ROUTER_REGION", raising=False)
        path = _write_config(tmp_path, """
            config_values:
              releases_url: https://${RELEASE_HOST}/repos
              region: ${UNSET_STEP_ROUTER_REGION:-eu-west-1}
        """)
        config = load_config(path)

        assert config.lookup("releases_url") == "https://api.github.com/repos"
        assert config.lookup("region") == "eu-west-1"

    def test_cached_until_file_changes(self, tmp_path):
        path = _write_config(tmp_path, "router:\n  max_cycles: 10\n")
        first = load_config(path)
        assert load_config(path) is first

    def test_invalid_yaml(self, tmp_path):
        path = _write_config(tmp_path, "router: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping(self, tmp_path):
        path = _write_config(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config(path)

    def test_invalid_limit(self, tmp_path):
        path = _write_config(tmp_path, "router:\n  max_redo: 0\n")
        with pytest.raises(ValidationError):
            load_config(path)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            RouterConfig(logging={"level": "LOUD"})


class TestLookup:
    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("STEP_ROUTER_VALUE_SPREADSHEET_ID", "sheet-123")
        assert RouterConfig().lookup("spreadsheet_id") == "sheet-123"

    def test_config_values_win_over_env(self, monkeypatch):
        monkeypatch.setenv("STEP_ROUTER_VALUE_REGION", "env")
        config = RouterConfig(config_values={"region": "file"})
        assert config.lookup("region") == "file"

    def test_unknown_key(self):
        assert RouterConfig().lookup("never_configured_key") is None

    def test_nested_env_override(self, monkeypatch):
        monkeypatch.setenv("STEP_ROUTER_ROUTER__MAX_CYCLES", "25")
        assert RouterConfig().router.max_cycles == 25


class TestRouterFromConfig:
    def test_router_uses_config(self):
        config = RouterConfig(
            matching={"array_policy": "existential"},
            router={"match_policy": "first", "max_cycles": 7, "max_redo": 3},
            config_values={"owner": "ops"},
        )
        router = TaskRouter.from_config(StepRegistry(), config)

        assert router.matcher.array_policy == ArrayPolicy.EXISTENTIAL
        assert router.match_policy == MatchPolicy.FIRST
        assert router.max_cycles == 7
        assert router.max_redo == 3
        assert router.config_lookup("owner") == "ops"
