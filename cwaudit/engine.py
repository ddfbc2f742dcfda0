"""ルールの並列実行。"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import logging
import time

from .analyzer.scope import ScopeFilter
from .models.finding import Finding, Severity
from .models.syntax import SyntaxTree
from .reporter import FindingReporter
from .rules import Rule, RuleContext, default_rules

logger = logging.getLogger(__name__)


@dataclass
class EngineStats:
    """直近の解析の統計情報。"""
    rules_run: int = 0
    findings: int = 0
    rule_seconds: Dict[str, float] = field(default_factory=dict)
    rule_counts: Dict[str, int] = field(default_factory=dict)


class AnalysisEngine:
    """構文木に対して全ルールを実行し、指摘を集約する。

    ルールは共有の読み取り専用コンテキストに対してスレッドプールで並列に
    評価される。結果の順序は完了順に依存しない。
    """

    def __init__(
        self,
        scope: Optional[ScopeFilter] = None,
        rules: Optional[Sequence[Rule]] = None,
        max_workers: int = 4,
        disabled_rules: Iterable[str] = (),
        severity_overrides: Optional[Mapping[str, Severity]] = None
    ):
        """エンジンを初期化する。

        Args:
            scope: スコープ判定（省略時はデフォルトのパターン）
            rules: 実行するルール（省略時は全ルール）
            max_workers: ルール評価のワーカースレッド数
            disabled_rules: 実行しないルールID
            severity_overrides: ルールIDごとの重大度の上書き
        """
        self.scope = scope or ScopeFilter()
        disabled = set(disabled_rules)
        self.rules: List[Rule] = [
            rule for rule in (rules if rules is not None else default_rules())
            if rule.rule_id not in disabled
        ]
        self.max_workers = max(1, max_workers)
        self.severity_overrides = dict(severity_overrides or {})
        self.stats = EngineStats()

    def analyze(self, tree: SyntaxTree) -> List[Finding]:
        """構文木を解析する。

        Args:
            tree: 解析対象の構文木

        Returns:
            (ファイル, 行, ルールID) 順に並んだ指摘のリスト
        """
        ctx = RuleContext(tree, self.scope)
        reporter = FindingReporter(self.severity_overrides)
        self.stats = EngineStats()

        logger.debug(f"Running {len(self.rules)} rules on {len(tree.functions)} functions")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {executor.submit(self._run_rule, rule, ctx): rule for rule in self.rules}
            for future in as_completed(futures):
                rule = futures[future]
                findings, elapsed = future.result()
                reporter.add(rule.rule_id, findings)
                self.stats.rule_seconds[rule.rule_id] = elapsed
                self.stats.rules_run += 1

        findings = reporter.report()
        self.stats.findings = len(findings)
        self.stats.rule_counts = reporter.summary()
        return findings

    @staticmethod
    def _run_rule(rule: Rule, ctx: RuleContext):
        start = time.perf_counter()
        findings = rule.check(ctx)
        elapsed = time.perf_counter() - start
        logger.debug(f"{rule.rule_id}: {len(findings)} findings in {elapsed:.3f}s")
        return findings, elapsed
