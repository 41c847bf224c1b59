"""
Tests for configuration loading — dojoConfig.yml parsing, env overrides, checks.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from src.core.config.loader import (
    ConfigError,
    apply_env_overrides,
    find_config_file,
    load_config,
    write_default_config,
)
from src.core.models.config import InstallerConfig
from src.core.use_cases.config_check import check_config


@pytest.fixture
def valid_config_yml(tmp_path: Path) -> Path:
    """Create a valid dojoConfig.yml in a temp directory."""
    content = textwrap.dedent("""\
        install:
          version: "2.31.0"
          root: /srv/dojo
          db:
            engine: MySQL
            port: 3306
            password: "db-Pa$$"
          admin:
            user: boss
            password: "admin-pw"
        settings:
          secret_key: "sekret-key"
          debug: true
        options:
          log_dir: /var/log/dojo
    """)
    path = tmp_path / "dojoConfig.yml"
    path.write_text(content)
    return path


# ── Loading ──────────────────────────────────────────────────────────


class TestLoadConfig:
    def test_load_valid(self, valid_config_yml: Path):
        cfg = load_config(valid_config_yml)
        assert cfg.install.version == "2.31.0"
        assert cfg.install.root == "/srv/dojo"
        assert cfg.install.db.engine == "MySQL"
        assert cfg.install.db.port == 3306
        assert cfg.settings.debug is True
        assert cfg.options.log_dir == "/var/log/dojo"
        # Untouched sections keep defaults
        assert cfg.install.os.user == "dojo"

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "dojoConfig.yml"
        path.write_text("")
        assert load_config(path) == InstallerConfig()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "dojoConfig.yml"
        path.write_text("install: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "dojoConfig.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_values(self, tmp_path: Path):
        path = tmp_path / "dojoConfig.yml"
        path.write_text("install:\n  db:\n    engine: Oracle\n")
        with pytest.raises(ConfigError, match="Invalid installer configuration"):
            load_config(path)

    def test_find_walks_up(self, valid_config_yml: Path):
        nested = valid_config_yml.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == valid_config_yml.resolve()

    def test_find_none(self, tmp_path: Path):
        # tmp_path has no config, but an ancestor might; only check the type
        found = find_config_file(tmp_path)
        assert found is None or found.name == "dojoConfig.yml"


# ── Environment overrides ────────────────────────────────────────────


class TestEnvOverrides:
    def test_no_matching_vars_returns_same(self):
        cfg = InstallerConfig()
        assert apply_env_overrides(cfg, {"PATH": "/bin"}) is cfg

    def test_string_bool_int(self):
        cfg = apply_env_overrides(InstallerConfig(), {
            "DD_SECRET_KEY": "from-env",
            "DD_DEBUG": "True",
            "DD_SITE_ID": "7",
            "DD_DATABASE_HOST": "db.internal",
        })
        assert cfg.settings.secret_key == "from-env"
        assert cfg.settings.debug is True
        assert cfg.settings.site_id == 7
        assert cfg.install.db.host == "db.internal"

    def test_original_untouched(self):
        cfg = InstallerConfig()
        apply_env_overrides(cfg, {"DD_ADMIN_USER": "root"})
        assert cfg.install.admin.user == "admin"

    @pytest.mark.parametrize("value, expected", [
        ("1", True), ("t", True), ("TRUE", True),
        ("0", False), ("f", False), ("False", False),
    ])
    def test_bool_spellings(self, value, expected):
        cfg = apply_env_overrides(InstallerConfig(), {"DD_WHITENOISE": value})
        assert cfg.settings.whitenoise is expected

    def test_bad_bool(self):
        with pytest.raises(ConfigError, match="DD_DEBUG"):
            apply_env_overrides(InstallerConfig(), {"DD_DEBUG": "yes"})

    def test_bad_int(self):
        with pytest.raises(ConfigError, match="DD_SITE_ID"):
            apply_env_overrides(InstallerConfig(), {"DD_SITE_ID": "one"})

    def test_port_out_of_range(self):
        with pytest.raises(ConfigError):
            apply_env_overrides(InstallerConfig(), {"DD_CELERY_BROKER_PORT": "99999"})

    def test_overridden_secret_is_sensitive(self):
        cfg = apply_env_overrides(InstallerConfig(), {"DD_DATABASE_PASSWORD": "envpw"})
        assert "envpw" in cfg.sensitive_values()


# ── Default config ───────────────────────────────────────────────────


class TestWriteDefaultConfig:
    def test_round_trips_through_loader(self, tmp_path: Path):
        path = write_default_config(tmp_path / "dojoConfig.yml")
        assert load_config(path) == InstallerConfig()
        assert "install" in yaml.safe_load(path.read_text())

    def test_refuses_overwrite(self, valid_config_yml: Path):
        with pytest.raises(ConfigError, match="Refusing"):
            write_default_config(valid_config_yml)

    def test_force_overwrite(self, valid_config_yml: Path):
        write_default_config(valid_config_yml, overwrite=True)
        assert load_config(valid_config_yml).install.version == InstallerConfig().install.version


# ── Config check ─────────────────────────────────────────────────────


class TestCheckConfig:
    def test_valid_with_warnings(self, valid_config_yml: Path):
        result = check_config(valid_config_yml, environ={})
        assert result.valid
        assert result.to_dict()["db_engine"] == "MySQL"

    def test_default_secrets_warn(self, tmp_path: Path):
        path = write_default_config(tmp_path / "dojoConfig.yml")
        result = check_config(path, environ={})
        assert result.valid
        assert any("admin password" in w for w in result.warnings)

    def test_invalid(self, tmp_path: Path):
        path = tmp_path / "dojoConfig.yml"
        path.write_text("install:\n  db:\n    port: zero\n")
        result = check_config(path, environ={})
        assert not result.valid
        assert result.errors

    def test_bad_env_is_an_error(self, valid_config_yml: Path):
        result = check_config(valid_config_yml, environ={"DD_DEBUG": "maybe"})
        assert not result.valid
