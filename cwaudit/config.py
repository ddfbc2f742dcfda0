"""設定管理モジュール。"""

from dataclasses import dataclass, field, fields
from typing import List, Dict, Optional, Any
from pathlib import Path
import os
import logging

import yaml

from .analyzer.scope import DEFAULT_EXCLUDE_DIRS, DEFAULT_TEST_PATTERNS, ScopeFilter
from .models.finding import Severity

logger = logging.getLogger(__name__)

# 設定キー -> YAMLより優先する環境変数
ENV_OVERRIDES = {
    "max_workers": "CWAUDIT_MAX_WORKERS",
    "log_level": "CWAUDIT_LOG_LEVEL",
}


class ConfigError(Exception):
    """設定値が不正な場合のエラー。"""
    pass


@dataclass
class Config:
    """アプリケーション設定。"""

    # 解析対象のソースディレクトリ
    source_directories: List[str] = field(default_factory=list)

    # スコープ判定
    exclude_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
    test_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_TEST_PATTERNS))

    # ルール設定
    disabled_rules: List[str] = field(default_factory=list)
    severity_overrides: Dict[str, str] = field(default_factory=dict)

    # 処理設定
    max_workers: int = 4  # ルール評価のワーカースレッド数

    # 出力設定
    sarif_output: Optional[str] = None
    excel_output: Optional[str] = None

    # ロギング設定
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @classmethod
    def from_yaml(cls, file_path: str) -> "Config":
        """YAMLファイルから設定を読み込む。

        `ENV_OVERRIDES` の環境変数が設定されていれば、YAMLの値より優先する。

        Args:
            file_path: YAML設定ファイルのパス

        Returns:
            Configインスタンス

        Raises:
            ConfigError: YAMLとして読めない、またはトップレベルがマッピングでない場合
        """
        with open(file_path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"YAMLの解析に失敗しました: {file_path}: {e}") from e

        if data is None:
            data = {}
        elif not isinstance(data, dict):
            raise ConfigError(f"設定ファイルのトップレベルはマッピングである必要があります: {file_path}")

        for key, env_name in ENV_OVERRIDES.items():
            value = os.getenv(env_name)
            if value is not None:
                logger.debug(f"{key} overridden by {env_name}")
                data[key] = value

        config = cls.from_dict(data)
        logger.info(f"Configuration loaded from {file_path}")
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """辞書から設定を作成する。未知のキーは警告して無視する。

        Raises:
            ConfigError: max_workersが整数に変換できない場合
        """
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key in known:
                values[key] = value
            else:
                logger.warning(f"Unknown configuration key ignored: {key}")

        if "max_workers" in values:
            try:
                values["max_workers"] = int(values["max_workers"])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"max_workersが整数ではありません: {values['max_workers']}") from e

        return cls(**values)

    def validate(self) -> List[str]:
        """設定を検証する。

        Returns:
            検証エラーのリスト（有効な場合は空）
        """
        from .rules import RULES_BY_ID

        errors = []

        if self.max_workers < 1:
            errors.append(f"max_workersは1以上である必要があります: {self.max_workers}")

        for rule_id in self.disabled_rules:
            if rule_id not in RULES_BY_ID:
                errors.append(f"未知のルールIDです（disabled_rules）: {rule_id}")

        for rule_id, severity in self.severity_overrides.items():
            if rule_id not in RULES_BY_ID:
                errors.append(f"未知のルールIDです（severity_overrides）: {rule_id}")
            try:
                Severity.parse(severity)
            except ValueError:
                errors.append(f"不正な重大度です: {rule_id}={severity}")

        # パスの存在を検証
        for path in self.source_directories:
            if not Path(path).exists():
                errors.append(f"ソースディレクトリが存在しません: {path}")

        return errors

    def ensure_valid(self) -> None:
        """設定を検証し、エラーがあれば例外を送出する。

        Raises:
            ConfigError: 検証エラーがある場合
        """
        errors = self.validate()
        if errors:
            raise ConfigError("; ".join(errors))

    def severity_map(self) -> Dict[str, Severity]:
        """重大度の上書きをSeverityに変換して返す。

        Raises:
            ConfigError: 重大度の文字列が不正な場合
        """
        result = {}
        for rule_id, value in self.severity_overrides.items():
            try:
                result[rule_id] = Severity.parse(value)
            except ValueError as e:
                raise ConfigError(str(e)) from e
        return result

    def scope_filter(self) -> ScopeFilter:
        """設定からスコープ判定を作成する。"""
        return ScopeFilter(
            exclude_dirs=tuple(self.exclude_dirs),
            test_patterns=tuple(self.test_patterns),
        )

    def to_dict(self) -> Dict[str, Any]:
        """フィールドの宣言順に並べた辞書を返す。"""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def get_source_files(self) -> List[str]:
        """ソースディレクトリから全Rustソースファイルを取得する。

        除外ディレクトリ配下のファイルは返さない。除外判定はソース
        ディレクトリからの相対パスで行う。

        Returns:
            ソースファイルパスのリスト（ソート済み）
        """
        scope = self.scope_filter()
        source_files = []

        for source_dir in self.source_directories:
            path = Path(source_dir)
            if path.is_file() and path.suffix == ".rs":
                source_files.append(str(path))
            elif path.exists():
                source_files.extend(
                    str(f) for f in sorted(path.rglob("*.rs"))
                    if not scope.is_excluded(f.relative_to(path).as_posix())
                )

        logger.debug(f"Found {len(source_files)} source files")
        return source_files

    def save_yaml(self, file_path: str) -> None:
        """設定をYAMLファイルに保存する。未設定（None）の項目は書き出さない。"""
        data = {key: value for key, value in self.to_dict().items() if value is not None}

        output_path = Path(file_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(
            yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False),
            encoding="utf-8",
        )

        logger.info(f"Configuration saved to {file_path}")
