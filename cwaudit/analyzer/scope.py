"""ソースファイルの解析対象判定。"""

from dataclasses import dataclass, field
from enum import Enum
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import Dict, Iterable, Tuple


class FileScope(Enum):
    """ファイルの解析スコープ分類。"""
    IN_SCOPE = "in_scope"
    TEST = "test"
    EXCLUDED = "excluded"  # 依存ライブラリ・ビルド成果物


DEFAULT_EXCLUDE_DIRS: Tuple[str, ...] = (
    "target",
    ".cargo",
    "vendor",
    "node_modules",
    ".git",
    "artifacts",
    "schema",
)

DEFAULT_TEST_PATTERNS: Tuple[str, ...] = (
    "tests/",
    "multitest/",
    "integration_tests/",
    "test_*.rs",
    "*_test.rs",
    "*_tests.rs",
    "tests.rs",
    "testing.rs",
)


@dataclass(frozen=True)
class ScopeFilter:
    """パス・ファイル名のパターンによるスコープ判定。

    外部のドライバーから設定値として渡され、全ルールに明示的に引き回される。
    末尾が "/" のテストパターンはディレクトリ名、それ以外はファイル名に対する
    globとして扱う。
    """
    exclude_dirs: Tuple[str, ...] = DEFAULT_EXCLUDE_DIRS
    test_patterns: Tuple[str, ...] = DEFAULT_TEST_PATTERNS
    _cache: Dict[str, FileScope] = field(default_factory=dict, compare=False, repr=False)

    def classify(self, path: str) -> FileScope:
        """ファイルパスをスコープ分類する。

        Args:
            path: ソースファイルのパス

        Returns:
            FileScope
        """
        cached = self._cache.get(path)
        if cached is not None:
            return cached

        parts = PurePosixPath(path.replace("\\", "/")).parts
        directories = parts[:-1]
        filename = parts[-1] if parts else ""

        if any(d in self.exclude_dirs for d in directories):
            scope = FileScope.EXCLUDED
        elif self._is_test(directories, filename):
            scope = FileScope.TEST
        else:
            scope = FileScope.IN_SCOPE

        self._cache[path] = scope
        return scope

    def is_excluded(self, path: str) -> bool:
        return self.classify(path) == FileScope.EXCLUDED

    def is_test_file(self, path: str) -> bool:
        return self.classify(path) == FileScope.TEST

    def _is_test(self, directories: Iterable[str], filename: str) -> bool:
        directories = list(directories)
        for pattern in self.test_patterns:
            if pattern.endswith("/"):
                if pattern.rstrip("/") in directories:
                    return True
            elif fnmatchcase(filename, pattern):
                return True
        return False
