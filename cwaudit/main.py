"""CosmWasmコントラクト静的解析ツールのメインエントリーポイント。"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence
from dataclasses import dataclass
import logging

from . import __version__
from .config import Config, ConfigError
from .engine import AnalysisEngine
from .frontend import RustFrontend
from .io.excel_writer import ExcelWriter
from .io.sarif_writer import SarifWriter
from .models.finding import Finding, Severity
from .utils.logger import setup_logging, ProgressLogger

logger = logging.getLogger(__name__)


@dataclass
class AuditStats:
    """処理統計情報。"""
    files: int = 0
    failed_files: int = 0
    functions: int = 0
    findings: int = 0
    errors: int = 0
    warnings: int = 0


class ContractAuditor:
    """ソース収集・構文解析・ルール評価・出力をまとめるメインクラス。"""

    def __init__(self, config: Config):
        """解析器を初期化する。

        Args:
            config: アプリケーション設定

        Raises:
            ConfigError: 設定が不正な場合
        """
        self.config = config
        self.stats = AuditStats()

        config.ensure_valid()
        self.frontend = RustFrontend()
        self.engine = AnalysisEngine(
            scope=config.scope_filter(),
            max_workers=config.max_workers,
            disabled_rules=config.disabled_rules,
            severity_overrides=config.severity_map(),
        )

        logger.info(f"{len(self.engine.rules)} rules enabled")

    def run(self) -> List[Finding]:
        """設定されたソースディレクトリを解析する。

        Returns:
            並べ替え済みの指摘
        """
        source_files = self.config.get_source_files()
        self.stats = AuditStats(files=len(source_files))
        logger.info(f"Analysis started: {len(source_files)} files")

        progress = ProgressLogger(len(source_files), logger, log_interval=20)
        tree = self.frontend.parse_paths(
            source_files, progress=progress, base_dirs=self.config.source_directories
        )
        progress.complete()

        self.stats.failed_files = len(self.frontend.failed_files)
        self.stats.functions = len(tree.functions)

        findings = self.engine.analyze(tree)
        self.stats.findings = len(findings)
        self.stats.errors = sum(1 for f in findings if f.severity == Severity.ERROR)
        self.stats.warnings = self.stats.findings - self.stats.errors

        self._write_outputs(findings)
        self._log_statistics()
        return findings

    def _write_outputs(self, findings: Sequence[Finding]) -> None:
        if self.config.sarif_output:
            SarifWriter(self.engine.rules, tool_version=__version__).write(
                findings, self.config.sarif_output
            )
        if self.config.excel_output:
            ExcelWriter(self.config.excel_output).write(
                findings, rule_counts=self.engine.stats.rule_counts
            )

    def _log_statistics(self) -> None:
        """処理統計をログ出力する。"""
        logger.info("=" * 50)
        logger.info("Analysis Statistics:")
        logger.info(f"  Files: {self.stats.files} ({self.stats.failed_files} unreadable)")
        logger.info(f"  Functions: {self.stats.functions}")
        logger.info(f"  Findings: {self.stats.findings}")
        logger.info(f"    error: {self.stats.errors}")
        logger.info(f"    warning: {self.stats.warnings}")
        for rule_id, count in self.engine.stats.rule_counts.items():
            logger.info(f"    {rule_id}: {count}")
        logger.info("=" * 50)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cwaudit",
        description="CosmWasmスマートコントラクト静的解析ツール"
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="解析するディレクトリまたは .rs ファイル"
    )
    parser.add_argument(
        "-c", "--config",
        help="設定ファイルパス（YAML）"
    )
    parser.add_argument(
        "--sarif",
        help="SARIF出力ファイル"
    )
    parser.add_argument(
        "--excel",
        help="Excel出力ファイル"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="詳細ログを有効にする"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """メインエントリーポイント。

    Returns:
        終了コード（error重大度の指摘があれば1）
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # 設定を読み込み
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: 設定ファイルが見つかりません: {args.config}", file=sys.stderr)
            return 2
        try:
            config = Config.from_yaml(str(config_path))
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
    else:
        config = Config()

    # コマンドライン引数で上書き
    if args.paths:
        config.source_directories = list(args.paths)
    if args.sarif:
        config.sarif_output = args.sarif
    if args.excel:
        config.excel_output = args.excel
    if args.verbose:
        config.log_level = "DEBUG"

    setup_logging(level=config.log_level, log_file=config.log_file)

    if not config.source_directories:
        parser.error("解析対象のパスを指定してください")

    try:
        auditor = ContractAuditor(config)
    except ConfigError as e:
        for error in str(e).split("; "):
            logger.error(f"Configuration error: {error}")
        return 2

    findings = auditor.run()
    for finding in findings:
        print(finding)

    return 1 if auditor.stats.errors else 0


if __name__ == "__main__":
    sys.exit(main())
