"""Tests for configuration loading and validation."""

import json

import pytest
from typer.testing import CliRunner

from wt_manager.cli import app
from wt_manager.config import Config, get_config_path, load_config, parse_config
from wt_manager.constants import MAX_CONCURRENT_PR_FETCHES
from wt_manager.exceptions import ConfigError


def write_config(data: object) -> None:
    path = get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestLoadConfig:
    def test_defaults_when_missing(self) -> None:
        config = load_config()
        assert config == Config()
        assert config.pr.max_concurrent_fetches == MAX_CONCURRENT_PR_FETCHES
        assert config.forge.default == "github"
        assert not config.prune.delete_local_branches

    def test_invalid_json(self) -> None:
        path = get_config_path()
        path.parent.mkdir(parents=True)
        path.write_text("{nope")
        with pytest.raises(ConfigError, match="failed to read"):
            load_config()

    def test_not_an_object(self) -> None:
        write_config(["a"])
        with pytest.raises(ConfigError, match="JSON object"):
            load_config()

    def test_full(self) -> None:
        write_config(
            {
                "default_labels": ["work", " "],
                "hosts": {"Git.Corp.com": "gitlab"},
                "forge": {"default": "gitlab", "rules": [{"pattern": "oss/*", "type": "github"}]},
                "prune": {"delete_local_branches": "yes"},
                "pr": {"max_concurrent_fetches": 3, "refresh_timeout": None},
                "hooks": {
                    "notify": {"command": "echo {branch}", "on": "prune", "enabled": "false"},
                    "short": "true",
                },
            }
        )

        config = load_config()

        assert config.default_labels == ["work"]
        assert config.hosts == {"git.corp.com": "gitlab"}
        assert config.forge.default == "gitlab"
        assert config.forge.type_for_repo("oss/tool") == "github"
        assert config.forge.type_for_repo("corp/tool") is None
        assert config.prune.delete_local_branches
        assert config.pr.max_concurrent_fetches == 3
        assert config.pr.refresh_timeout is None
        assert config.hooks["notify"].on == ["prune"]
        assert not config.hooks["notify"].enabled
        assert config.hooks["short"].command == "true"


class TestValidation:
    def test_unknown_forge(self) -> None:
        with pytest.raises(ConfigError, match="forge.default"):
            parse_config({"forge": {"default": "bitbucket"}})

    def test_unknown_host_type(self) -> None:
        with pytest.raises(ConfigError):
            parse_config({"hosts": {"x.com": "gitea"}})

    def test_concurrency_must_be_positive(self) -> None:
        with pytest.raises(ConfigError, match="at least 1"):
            parse_config({"pr": {"max_concurrent_fetches": 0}})

    def test_bad_timeout(self) -> None:
        with pytest.raises(ConfigError, match="invalid pr settings"):
            parse_config({"pr": {"refresh_timeout": "soon"}})

    @pytest.mark.parametrize(
        "data",
        [{"pr": 5}, {"forge": "gitlab"}, {"prune": "yes"}, {"pr": ["a"]}],
    )
    def test_section_must_be_object(self, data: dict) -> None:
        with pytest.raises(ConfigError, match="must be an object"):
            parse_config(data)

    def test_section_shape_error_reaches_cli(self) -> None:
        write_config({"prune": "yes"})
        result = CliRunner().invoke(app, ["list", "-g"])
        assert result.exit_code == 1
        assert "prune must be an object" in result.stdout

    def test_hook_without_command(self) -> None:
        with pytest.raises(ConfigError, match="needs a command"):
            parse_config({"hooks": {"empty": {"on": ["prune"]}}})

    def test_hook_unknown_trigger(self) -> None:
        with pytest.raises(ConfigError, match="hooks.x.on"):
            parse_config({"hooks": {"x": {"command": "true", "on": ["deploy"]}}})
