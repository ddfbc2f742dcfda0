"""設定管理モジュールのテスト。"""

import pytest
import yaml

from cwaudit.analyzer.scope import DEFAULT_EXCLUDE_DIRS
from cwaudit.config import Config, ConfigError
from cwaudit.models.finding import Severity


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("CWAUDIT_MAX_WORKERS", raising=False)
    monkeypatch.delenv("CWAUDIT_LOG_LEVEL", raising=False)


def _write_yaml(path, data):
    path.write_text(yaml.dump(data), encoding="utf-8")
    return str(path)


class TestConfigLoading:
    """YAML設定の読み込みのテスト。"""

    def test_defaults(self):
        config = Config()
        assert config.max_workers == 4
        assert config.exclude_dirs == list(DEFAULT_EXCLUDE_DIRS)
        assert config.sarif_output is None

    def test_from_yaml(self, tmp_path):
        config_file = _write_yaml(tmp_path / "config.yaml", {
            "source_directories": [str(tmp_path)],
            "disabled_rules": ["unchecked-arithmetic"],
            "severity_overrides": {"storage-key-collision": "warning"},
            "max_workers": 2,
            "sarif_output": "out/findings.sarif",
            "log_level": "DEBUG",
        })
        config = Config.from_yaml(config_file)

        assert config.source_directories == [str(tmp_path)]
        assert config.disabled_rules == ["unchecked-arithmetic"]
        assert config.max_workers == 2
        assert config.sarif_output == "out/findings.sarif"
        assert config.log_level == "DEBUG"
        assert config.exclude_dirs == list(DEFAULT_EXCLUDE_DIRS)

    def test_empty_yaml(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("", encoding="utf-8")
        assert Config.from_yaml(str(config_file)).max_workers == 4

    def test_environment_overrides(self, tmp_path, monkeypatch):
        """環境変数がYAMLの値より優先されることのテスト。"""
        config_file = _write_yaml(tmp_path / "config.yaml", {"max_workers": 2, "log_level": "INFO"})
        monkeypatch.setenv("CWAUDIT_MAX_WORKERS", "8")
        monkeypatch.setenv("CWAUDIT_LOG_LEVEL", "WARNING")

        config = Config.from_yaml(config_file)
        assert config.max_workers == 8
        assert config.log_level == "WARNING"

    def test_invalid_max_workers(self, tmp_path, monkeypatch):
        config_file = _write_yaml(tmp_path / "config.yaml", {})
        monkeypatch.setenv("CWAUDIT_MAX_WORKERS", "many")
        with pytest.raises(ConfigError):
            Config.from_yaml(config_file)

    def test_malformed_yaml(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("disabled_rules: [unterminated\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            Config.from_yaml(str(config_file))

    def test_top_level_must_be_mapping(self, tmp_path):
        config_file = _write_yaml(tmp_path / "list.yaml", ["unchecked-arithmetic"])
        with pytest.raises(ConfigError):
            Config.from_yaml(config_file)

    def test_from_dict_ignores_unknown_keys(self):
        config = Config.from_dict({"max_workers": 3, "unknown": True})
        assert config.max_workers == 3
        assert not hasattr(config, "unknown")

    def test_save_and_reload(self, tmp_path):
        config = Config(source_directories=["contracts"], disabled_rules=["ibc-cei-violation"])
        output = tmp_path / "nested" / "config.yaml"
        config.save_yaml(str(output))

        reloaded = Config.from_yaml(str(output))
        assert reloaded.to_dict() == config.to_dict()


class TestConfigValidation:
    """設定の検証のテスト。"""

    def test_valid(self, tmp_path):
        config = Config(
            source_directories=[str(tmp_path)],
            severity_overrides={"unchecked-arithmetic": "error"},
        )
        assert config.validate() == []
        config.ensure_valid()

    def test_errors_are_collected(self, tmp_path):
        config = Config(
            source_directories=[str(tmp_path / "missing")],
            disabled_rules=["no-such-rule"],
            severity_overrides={"storage-key-collision": "critical"},
            max_workers=0,
        )
        errors = config.validate()
        assert len(errors) == 4

        with pytest.raises(ConfigError) as excinfo:
            config.ensure_valid()
        assert "no-such-rule" in str(excinfo.value)

    def test_severity_map(self):
        config = Config(severity_overrides={"unchecked-arithmetic": "ERROR", "ibc-cei-violation": "medium"})
        assert config.severity_map() == {
            "unchecked-arithmetic": Severity.ERROR,
            "ibc-cei-violation": Severity.WARNING,
        }

    def test_scope_filter(self):
        config = Config(exclude_dirs=["generated"], test_patterns=["*_spec.rs"])
        scope = config.scope_filter()
        assert scope.is_excluded("generated/msg.rs")
        assert scope.is_test_file("src/contract_spec.rs")


class TestSourceFiles:
    """ソースファイル収集のテスト。"""

    def test_collects_sorted_rust_files(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "state.rs").write_text("", encoding="utf-8")
        (tmp_path / "src" / "contract.rs").write_text("", encoding="utf-8")
        (tmp_path / "README.md").write_text("", encoding="utf-8")

        files = Config(source_directories=[str(tmp_path)]).get_source_files()
        assert [p.replace("\\", "/").split("/")[-1] for p in files] == ["contract.rs", "state.rs"]

    def test_skips_excluded_directories(self, tmp_path):
        (tmp_path / "target" / "debug").mkdir(parents=True)
        (tmp_path / "target" / "debug" / "out.rs").write_text("", encoding="utf-8")
        (tmp_path / "lib.rs").write_text("", encoding="utf-8")

        files = Config(source_directories=[str(tmp_path)]).get_source_files()
        assert files == [str(tmp_path / "lib.rs")]

    def test_root_inside_excluded_name(self, tmp_path):
        """ソースディレクトリ自体の上位パスは除外判定に使わないことのテスト。"""
        root = tmp_path / "vendor" / "contract"
        root.mkdir(parents=True)
        (root / "lib.rs").write_text("", encoding="utf-8")

        files = Config(source_directories=[str(root)]).get_source_files()
        assert files == [str(root / "lib.rs")]

    def test_single_file(self, tmp_path):
        source = tmp_path / "contract.rs"
        source.write_text("", encoding="utf-8")
        assert Config(source_directories=[str(source)]).get_source_files() == [str(source)]
