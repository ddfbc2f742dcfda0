"""ルールごとの指摘リストを決定的な順序の1本のレポートにまとめる。"""

from collections import Counter
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, Optional
import logging

from .models.finding import Finding, Severity

logger = logging.getLogger(__name__)


class FindingReporter:
    """指摘の集約・重複除去・並べ替え・重大度の上書きを行う。

    ルールの完了順は実行ごとに異なるため、集約はルールID順に行い、その後
    (ファイル, 行, ルールID) の安定ソートをかける。同じ入力に対しては常に
    同じ列が得られる。
    """

    def __init__(self, severity_overrides: Optional[Mapping[str, Severity]] = None):
        """レポーターを初期化する。

        Args:
            severity_overrides: ルールIDごとの重大度の上書き
        """
        self.severity_overrides: Dict[str, Severity] = dict(severity_overrides or {})
        self._by_rule: Dict[str, List[Finding]] = {}

    def add(self, rule_id: str, findings: Iterable[Finding]) -> None:
        """1ルール分の指摘を追加する。"""
        self._by_rule.setdefault(rule_id, []).extend(findings)

    def report(self) -> List[Finding]:
        """重複を除いて並べ替えた指摘のリストを返す。"""
        seen = set()
        merged = []
        for rule_id in sorted(self._by_rule):
            for finding in self._by_rule[rule_id]:
                finding = self._apply_override(finding)
                if finding in seen:
                    continue
                seen.add(finding)
                merged.append(finding)

        dropped = sum(len(v) for v in self._by_rule.values()) - len(merged)
        if dropped:
            logger.debug(f"Dropped {dropped} duplicate findings")

        return sorted(merged, key=Finding.sort_key)

    def summary(self) -> Dict[str, int]:
        """ルールIDごとの指摘件数（重複除去後）。"""
        counts = Counter(f.rule_id for f in self.report())
        return {rule_id: counts.get(rule_id, 0) for rule_id in sorted(self._by_rule)}

    def has_errors(self) -> bool:
        return any(f.severity == Severity.ERROR for f in self.report())

    def _apply_override(self, finding: Finding) -> Finding:
        severity = self.severity_overrides.get(finding.rule_id)
        if severity is None or severity == finding.severity:
            return finding
        return replace(finding, severity=severity)
