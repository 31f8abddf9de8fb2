# ABOUTME: Unit tests for ackdev configuration handling.
# ABOUTME: Tests loading, saving, and validating YAML config files.
"""Tests for ackdev.config."""

from pathlib import Path

import pytest

from ackdev.config import (
    CONFIG_PATH_ENV,
    DEFAULT_CORE_REPOSITORIES,
    TOKEN_ENV,
    Config,
    ConfigError,
    GitConfig,
    GithubConfig,
    RepositoriesConfig,
    create_default_config,
    expand_path,
    get_default_config_path,
    load_config,
    parse_config,
    save_config,
    serialize_config,
    validate_config,
)


@pytest.fixture(autouse=True)
def no_token_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(TOKEN_ENV, raising=False)


class TestExpandPath:
    """Tests for expand_path function."""

    def test_expands_tilde(self) -> None:
        """Tilde is expanded to home directory."""
        result = expand_path("~/foo")
        assert not str(result).startswith("~")
        assert result.is_absolute()


class TestDefaultConfigPath:
    """Tests for get_default_config_path function."""

    def test_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Config lives under ~/.config/ackdev by default."""
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        assert get_default_config_path() == Path.home() / ".config" / "ackdev" / "config.yaml"

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """ACKDEV_CONFIG overrides the default location."""
        monkeypatch.setenv(CONFIG_PATH_ENV, str(tmp_path / "ackdev.yaml"))
        assert get_default_config_path() == tmp_path / "ackdev.yaml"


class TestParseConfig:
    """Tests for parse_config function."""

    def test_full_config(self, tmp_path: Path) -> None:
        """Every section is parsed from camelCase keys."""
        data = {
            "rootDirectory": str(tmp_path),
            "github": {
                "username": "ada",
                "token": "secret",
                "forkPrefix": "ack-",
            },
            "git": {"sshKeyPath": str(tmp_path / "id_ed25519")},
            "repositories": {"core": ["runtime"], "services": ["s3", "ecr"]},
            "run": {"failFast": False, "workers": 4, "forkGracePeriod": 2},
        }
        config = parse_config(data)

        assert config.root_directory == tmp_path
        assert config.github.organization == "aws-controllers-k8s"
        assert config.github.username == "ada"
        assert config.github.token == "secret"
        assert config.github.fork_prefix == "ack-"
        assert config.git.ssh_key_path == tmp_path / "id_ed25519"
        assert config.repositories.core == ["runtime"]
        assert config.repositories.services == ["s3", "ecr"]
        assert not config.run.fail_fast
        assert config.run.workers == 4
        assert config.run.fork_grace_period == 2.0

    def test_minimal_config(self) -> None:
        """Missing sections fall back to defaults."""
        config = parse_config({"rootDirectory": "~/ack"})

        assert config.root_directory == Path.home() / "ack"
        assert config.github.username == ""
        assert config.git.ssh_key_path is None
        assert config.repositories.core == []
        assert config.run.fail_fast
        assert config.run.workers == 1

    def test_default_root(self) -> None:
        """Without rootDirectory repositories go under the Go source tree."""
        config = parse_config({})
        assert config.root_directory == (
            Path.home() / "go" / "src" / "github.com" / "aws-controllers-k8s"
        )

    def test_token_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """GITHUB_TOKEN is used when the file has no token."""
        monkeypatch.setenv(TOKEN_ENV, "from-env")
        config = parse_config({"github": {"username": "ada"}})
        assert config.github.token == "from-env"

    def test_file_token_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """A token in the file takes precedence over the environment."""
        monkeypatch.setenv(TOKEN_ENV, "from-env")
        config = parse_config({"github": {"token": "from-file"}})
        assert config.github.token == "from-file"

    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"github": "ada"}, "'github' must be a mapping"),
            ({"repositories": {"core": "runtime"}}, "must be a list"),
            ({"repositories": {"services": [1]}}, "must be strings"),
            ({"github": {"username": 42}}, "must be a string"),
            ({"run": {"workers": "many"}}, "Invalid 'run' settings"),
            ({"run": {"workers": 0}}, "at least 1"),
            ({"run": {"failFast": "false"}}, "'run.failFast' must be a boolean"),
        ],
    )
    def test_invalid(self, data: dict, message: str) -> None:
        """Malformed settings raise ConfigError."""
        with pytest.raises(ConfigError, match=message):
            parse_config(data)


class TestLoadConfig:
    """Tests for load_config function."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        """Load a valid config file."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "rootDirectory: ~/ack\n"
            "github:\n"
            "  username: ada\n"
            "  forkPrefix: ack-\n"
            "repositories:\n"
            "  core: [runtime]\n"
            "  services: [s3]\n"
        )

        config = load_config(config_file)

        assert config.github.fork_prefix == "ack-"
        assert config.repositories.services == ["s3"]

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        """Missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nonexistent.yaml")

    def test_empty_file_raises(self, tmp_path: Path) -> None:
        """Empty file raises ConfigError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")
        with pytest.raises(ConfigError, match="empty"):
            load_config(config_file)

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        """Invalid YAML raises ConfigError."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("github: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_file)

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        """A top-level list is not a config."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- runtime\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(config_file)


class TestSaveConfig:
    """Tests for save_config function."""

    def test_save_and_reload(self, tmp_path: Path) -> None:
        """Saved config can be loaded back."""
        config = Config(
            root_directory=tmp_path / "ack",
            github=GithubConfig(username="ada", token="secret", fork_prefix="ack-"),
            git=GitConfig(ssh_key_path=tmp_path / "id_rsa"),
            repositories=RepositoriesConfig(core=["runtime"], services=["s3"]),
        )
        config_file = tmp_path / "nested" / "config.yaml"

        save_config(config, config_file)
        loaded = load_config(config_file)

        assert loaded == config

    def test_env_token_not_written(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """A token taken from the environment is not saved to disk."""
        monkeypatch.setenv(TOKEN_ENV, "from-env")
        config = Config(root_directory=tmp_path, github=GithubConfig(token="from-env"))

        data = serialize_config(config)

        assert "token" not in data["github"]

    def test_home_paths_use_tilde(self) -> None:
        """Paths under the home directory are written with ~."""
        config = Config(root_directory=Path.home() / "ack")
        assert serialize_config(config)["rootDirectory"] == "~/ack"


class TestCreateDefaultConfig:
    """Tests for create_default_config function."""

    def test_defaults(self) -> None:
        """Default config manages the core repositories and no services."""
        config = create_default_config()
        assert config.repositories.core == DEFAULT_CORE_REPOSITORIES
        assert config.repositories.services == []
        assert config.github.organization == "aws-controllers-k8s"

    def test_with_values(self, tmp_path: Path) -> None:
        """Given values are used."""
        config = create_default_config(
            root_directory=tmp_path, username="ada", fork_prefix="ack-", services=["s3"]
        )
        assert config.root_directory == tmp_path
        assert config.github.username == "ada"
        assert config.repositories.services == ["s3"]


class TestValidateConfig:
    """Tests for validate_config function."""

    def test_valid_config(self, tmp_path: Path) -> None:
        """A complete config has no warnings."""
        config = Config(
            root_directory=tmp_path,
            github=GithubConfig(username="ada", token="secret"),
            repositories=RepositoriesConfig(core=["runtime"], services=["s3"]),
        )
        assert validate_config(config) == []

    def test_missing_settings(self, tmp_path: Path) -> None:
        """Missing root, username, token and key are reported."""
        config = Config(
            root_directory=tmp_path / "missing",
            git=GitConfig(ssh_key_path=tmp_path / "id_rsa"),
        )
        warnings = validate_config(config)
        assert len(warnings) == 4
        assert any("Root directory" in w for w in warnings)
        assert any("username" in w for w in warnings)
        assert any(TOKEN_ENV in w for w in warnings)
        assert any("SSH key" in w for w in warnings)

    def test_duplicates(self, tmp_path: Path) -> None:
        """Repositories listed twice are reported."""
        config = Config(
            root_directory=tmp_path,
            github=GithubConfig(username="ada", token="secret"),
            repositories=RepositoriesConfig(core=["runtime", "runtime"]),
        )
        assert validate_config(config) == [
            "Repository 'runtime' listed more than once in 'core'"
        ]

    def test_suffixed_service(self, tmp_path: Path) -> None:
        """Service names should not carry the controller suffix."""
        config = Config(
            root_directory=tmp_path,
            github=GithubConfig(username="ada", token="secret"),
            repositories=RepositoriesConfig(services=["s3-controller"]),
        )
        warnings = validate_config(config)
        assert len(warnings) == 1
        assert "s3-controller" in warnings[0]

    def test_core_collides_with_controller(self, tmp_path: Path) -> None:
        """A core repository named like a controller is reported."""
        config = Config(
            root_directory=tmp_path,
            github=GithubConfig(username="ada", token="secret"),
            repositories=RepositoriesConfig(core=["s3-controller"], services=["s3"]),
        )
        warnings = validate_config(config)
        assert warnings == ["Core repository 's3-controller' collides with a service controller"]
