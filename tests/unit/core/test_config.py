"""
Tests for MidweaveConfig loading.

Layers: dataclass defaults, YAML file, environment variables.
"""
from pathlib import Path

import pytest

from midweave.core.config import MidweaveConfig, RemoteConfig
from midweave.core.exceptions import ConfigurationError


@pytest.fixture
def config_file(tmp_dir):
    path = tmp_dir / "midweave.yaml"
    path.write_text(
        "remote:\n"
        "  repository: someone/styles\n"
        "  branch: gallery\n"
        "  max_attempts: 7\n"
        "cache:\n"
        "  path: /tmp/mw/cache.db\n"
        "  stale_after_seconds: 60\n"
        "analyzer:\n"
        "  model: gpt-4o\n"
        "admin_password: from-yaml\n",
        encoding="utf-8",
    )
    return path


class TestLoad:
    """Tests for MidweaveConfig.load()."""

    def test_yaml_values_applied(self, config_file):
        config = MidweaveConfig.load(config_file, environ={})
        assert config.remote.repository == "someone/styles"
        assert config.remote.branch == "gallery"
        assert config.remote.max_attempts == 7
        assert config.cache.path == Path("/tmp/mw/cache.db")
        assert config.cache.stale_after_seconds == 60
        assert config.analyzer.model == "gpt-4o"
        assert config.admin_password == "from-yaml"

    def test_environment_wins_over_yaml(self, config_file):
        config = MidweaveConfig.load(
            config_file,
            environ={
                "MIDWEAVE_GITHUB_TOKEN": "tok",
                "MIDWEAVE_REPOSITORY": "other/repo",
                "MIDWEAVE_ADMIN_PASSWORD": "from-env",
                "OPENAI_API_KEY": "sk-test",
            },
        )
        assert config.remote.token == "tok"
        assert config.remote.repository == "other/repo"
        assert config.admin_password == "from-env"
        assert config.analyzer.api_key == "sk-test"

    def test_missing_explicit_file_raises(self, tmp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            MidweaveConfig.load(tmp_dir / "absent.yaml", environ={})

    def test_invalid_yaml_raises(self, tmp_dir):
        path = tmp_dir / "bad.yaml"
        path.write_text("remote: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            MidweaveConfig.load(path, environ={})


class TestValidate:
    """Tests for MidweaveConfig.validate()."""

    def test_requires_token(self):
        with pytest.raises(ConfigurationError, match="token"):
            MidweaveConfig().validate()

    def test_passes_with_token(self):
        config = MidweaveConfig()
        config.remote.token = "tok"
        config.validate()


class TestRemoteConfig:
    """Tests for repository parsing."""

    def test_set_repository(self):
        remote = RemoteConfig()
        remote.set_repository("owner/name")
        assert (remote.owner, remote.repo) == ("owner", "name")

    @pytest.mark.parametrize("value", ["justone", "a/b/c", "/"])
    def test_set_repository_rejects_malformed(self, value):
        with pytest.raises(ConfigurationError):
            RemoteConfig().set_repository(value)
