"""ルールエンジンが出力する指摘情報モデル。"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
from enum import Enum


class Severity(Enum):
    """指摘の重大度。"""
    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def parse(cls, value) -> "Severity":
        """文字列から重大度をパースする。

        Args:
            value: 重大度の文字列（"error" / "warning"、大文字小文字は無視）

        Returns:
            Severity列挙値

        Raises:
            ValueError: 未知の重大度の場合
        """
        value_str = str(value).lower().strip()
        mapping = {
            "error": cls.ERROR,
            "high": cls.ERROR,
            "warning": cls.WARNING,
            "warn": cls.WARNING,
            "medium": cls.WARNING,
        }
        if value_str not in mapping:
            raise ValueError(f"Unknown severity: {value}")
        return mapping[value_str]


@dataclass(frozen=True)
class SourceLocation:
    """ソースコードの位置情報。"""
    file_path: str
    start_line: int
    end_line: int
    start_column: Optional[int] = None

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.file_path}:{self.start_line}"
        return f"{self.file_path}:{self.start_line}-{self.end_line}"


@dataclass(frozen=True)
class Finding:
    """ルールが検出した1件の指摘。生成後は変更しない。"""
    rule_id: str
    severity: Severity
    location: SourceLocation
    message: str
    cwe: Optional[str] = None
    function: Optional[str] = None
    related_locations: Tuple[SourceLocation, ...] = field(default_factory=tuple)

    def sort_key(self) -> Tuple[str, int, str, int]:
        """レポート出力時の安定ソートキー（ファイル、行、ルールID）。"""
        return (
            self.location.file_path,
            self.location.start_line,
            self.rule_id,
            self.location.start_column or 0,
        )

    def __str__(self) -> str:
        return f"[{self.severity.value}] {self.rule_id} at {self.location}: {self.message}"
