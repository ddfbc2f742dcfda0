"""静的に決定できる呼び出し先の解決（1ホップのみ）。"""

from typing import Dict, List, Optional
import logging

from ..models.syntax import FunctionDecl, Node, NodeKind, SyntaxTree
from .scope import ScopeFilter

logger = logging.getLogger(__name__)

# 呼び出し先パスの先頭に付くモジュール相対の修飾子
_RELATIVE_PREFIXES = ("crate", "self", "super")


class CallGraphResolver:
    """フリー関数呼び出しの呼び出し先を解析対象ファイル内の関数に解決する。

    メソッド呼び出し・マクロ・型に関連付いた関数（`Type::f`）・同名の関数が
    複数ある呼び出しは解決しない（Noneを返す）。これはエラーではなく既知の
    不完全性として扱う。
    """

    def __init__(self, tree: SyntaxTree, scope: ScopeFilter):
        """解決器を初期化する。

        Args:
            tree: 解析対象の構文木
            scope: スコープ判定（除外ファイルの関数は解決先にしない）
        """
        self.tree = tree
        self.scope = scope
        self._candidates: Dict[str, List[FunctionDecl]] = {}
        self._cache: Dict[int, Optional[FunctionDecl]] = {}

        for fn in tree.functions:
            if fn.body is None:
                continue
            if scope.is_excluded(tree.file_of(fn).path):
                continue
            self._candidates.setdefault(fn.name, []).append(fn)

    def resolve_static_target(self, call: Node) -> Optional[FunctionDecl]:
        """呼び出し式の静的な呼び出し先を返す。

        Args:
            call: 呼び出し式ノード

        Returns:
            一意に決まる関数、決まらなければNone
        """
        if call.index in self._cache:
            return self._cache[call.index]

        target = self._resolve(call)
        if target is None:
            logger.debug(f"Unresolved call: {call.text[:60]}")
        self._cache[call.index] = target
        return target

    def callees(self, fn: FunctionDecl) -> List[FunctionDecl]:
        """関数から1ホップで到達できる関数（重複なし、出現順）。"""
        seen = set()
        result = []
        for node in self.tree.function_nodes(fn):
            if not node.is_call:
                continue
            target = self.resolve_static_target(node)
            if target is not None and target.index not in seen and target.index != fn.index:
                seen.add(target.index)
                result.append(target)
        return result

    def _resolve(self, call: Node) -> Optional[FunctionDecl]:
        if call.kind != NodeKind.FREE_CALL or not call.name:
            return None

        callee = call.name.strip()
        if callee.endswith("!"):
            return None

        segments = [s for s in callee.split("::") if s]
        if not segments:
            return None
        qualifiers = [s for s in segments[:-1] if s not in _RELATIVE_PREFIXES]
        # 大文字で始まる修飾子は型またはトレイト（関連関数の動的な解決になる）
        if any(q[:1].isupper() or q.startswith("<") for q in qualifiers):
            return None

        name = segments[-1]
        if not name.isidentifier():
            return None

        candidates = self._candidates.get(name, [])
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            same_file = [fn for fn in candidates if fn.file == call.file]
            if len(same_file) == 1:
                return same_file[0]
        return None
