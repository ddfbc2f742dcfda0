"""SARIF 2.1.0形式の出力モジュール。"""

from typing import Any, Dict, Iterable, List, Sequence
from pathlib import Path
import json
import logging

from ..models.finding import Finding, Severity, SourceLocation

logger = logging.getLogger(__name__)

SARIF_VERSION = "2.1.0"
SARIF_SCHEMA = "https://json.schemastore.org/sarif-2.1.0.json"
TOOL_NAME = "cwaudit"

_LEVELS = {
    Severity.ERROR: "error",
    Severity.WARNING: "warning",
}


class SarifWriter:
    """指摘をSARIFログとして書き出す。"""

    def __init__(self, rules: Iterable = (), tool_version: str = ""):
        """SARIFライターを初期化する。

        Args:
            rules: ルール記述子を出力するルール（`info` 属性を持つもの）
            tool_version: ツールのバージョン文字列
        """
        self.rules = list(rules)
        self.tool_version = tool_version

    def to_dict(self, findings: Sequence[Finding]) -> Dict[str, Any]:
        """SARIFログを辞書として組み立てる。"""
        descriptors = self._rule_descriptors(findings)
        rule_index = {d["id"]: i for i, d in enumerate(descriptors)}

        driver: Dict[str, Any] = {"name": TOOL_NAME, "rules": descriptors}
        if self.tool_version:
            driver["version"] = self.tool_version

        return {
            "$schema": SARIF_SCHEMA,
            "version": SARIF_VERSION,
            "runs": [{
                "tool": {"driver": driver},
                "results": [self._result(f, rule_index) for f in findings],
            }],
        }

    def write(self, findings: Sequence[Finding], output_file: str) -> None:
        """SARIFファイルを書き出す。

        Args:
            findings: 並べ替え済みの指摘
            output_file: 出力先パス
        """
        path = Path(output_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(findings), f, indent=2, ensure_ascii=False)
        logger.info(f"SARIF written to {path}")

    def _rule_descriptors(self, findings: Sequence[Finding]) -> List[Dict[str, Any]]:
        descriptors = []
        seen = set()
        for rule in self.rules:
            info = rule.info
            seen.add(info.rule_id)
            descriptor: Dict[str, Any] = {
                "id": info.rule_id,
                "name": info.title,
                "shortDescription": {"text": info.title},
                "fullDescription": {"text": info.description},
                "defaultConfiguration": {"level": _LEVELS[info.severity]},
            }
            if info.cwe:
                descriptor["properties"] = {"tags": ["security", f"external/cwe/{info.cwe.lower()}"]}
            descriptors.append(descriptor)

        # ルール一覧にない指摘（外部から渡されたもの）にも記述子を用意する
        for finding in findings:
            if finding.rule_id not in seen:
                seen.add(finding.rule_id)
                descriptors.append({"id": finding.rule_id})
        return descriptors

    def _result(self, finding: Finding, rule_index: Dict[str, int]) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "ruleId": finding.rule_id,
            "ruleIndex": rule_index[finding.rule_id],
            "level": _LEVELS[finding.severity],
            "message": {"text": finding.message},
            "locations": [_location(finding.location)],
        }
        if finding.related_locations:
            result["relatedLocations"] = [
                dict(_location(loc), id=i) for i, loc in enumerate(finding.related_locations)
            ]
        return result


def _location(location: SourceLocation) -> Dict[str, Any]:
    region: Dict[str, Any] = {
        "startLine": location.start_line,
        "endLine": location.end_line,
    }
    if location.start_column is not None:
        region["startColumn"] = location.start_column
    return {
        "physicalLocation": {
            "artifactLocation": {"uri": Path(location.file_path).as_posix()},
            "region": region,
        }
    }
