"""ルールの基底クラスと、ルール間で共有する解析コンテキスト。"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence
import logging

from ..analyzer.authorization import AuthorizationEvaluator
from ..analyzer.call_graph import CallGraphResolver
from ..analyzer.classifier import EntityClassifier
from ..analyzer.scope import ScopeFilter
from ..models.classification import EntryKind
from ..models.finding import Finding, Severity, SourceLocation
from ..models.syntax import FunctionDecl, Node, SourceFile, Span, SyntaxTree

logger = logging.getLogger(__name__)


class RuleContext:
    """1回の解析セッションで全ルールが読み取り共有する状態。

    構文木・スコープ設定・分類器・解決器・認可評価器を束ねる。すべて読み取り
    専用の純粋関数で、ワーカースレッド間で同期なしに共有できる。
    """

    def __init__(self, tree: SyntaxTree, scope: ScopeFilter):
        """コンテキストを構築する。

        Args:
            tree: 解析対象の構文木
            scope: スコープ判定（外部ドライバーから渡される設定値）
        """
        self.tree = tree
        self.scope = scope
        self.classifier = EntityClassifier(tree)
        self.resolver = CallGraphResolver(tree, scope)
        self.authorization = AuthorizationEvaluator(tree, self.classifier, self.resolver)

    def files(self, include_tests: bool) -> Iterator[SourceFile]:
        """ルールの対象ファイル（除外ファイルは常に除く）。"""
        for source_file in self.tree.files:
            if self.scope.is_excluded(source_file.path):
                continue
            if not include_tests and self.scope.is_test_file(source_file.path):
                continue
            yield source_file

    def functions(self, include_tests: bool) -> Iterator[FunctionDecl]:
        """対象ファイルに含まれる、本体を持つ関数。"""
        for source_file in self.files(include_tests):
            for fn_index in source_file.functions:
                fn = self.tree.function(fn_index)
                if fn.body is not None:
                    yield fn

    def entry_points(self, include_tests: bool, *kinds: EntryKind) -> List[FunctionDecl]:
        result = []
        for fn in self.functions(include_tests):
            kind = self.classifier.classify_entry_point(fn)
            if kind is not None and (not kinds or kind in kinds):
                result.append(fn)
        return result

    def with_callees(self, roots: Iterable[FunctionDecl], include_tests: bool) -> List[FunctionDecl]:
        """ルート関数と、そこから1ホップで到達できる対象ファイル内の関数。"""
        allowed = {fn.index for fn in self.functions(include_tests)}
        seen = set()
        result = []
        for root in roots:
            for fn in [root] + self.resolver.callees(root):
                if fn.index in allowed and fn.index not in seen:
                    seen.add(fn.index)
                    result.append(fn)
        return result

    def path_of(self, fn_or_node) -> str:
        return self.tree.files[fn_or_node.file].path


@dataclass(frozen=True)
class RuleInfo:
    """ルールのメタ情報。"""
    rule_id: str
    title: str
    severity: Severity
    cwe: Optional[str]
    description: str


class Rule:
    """ルールの基底クラス。

    サブクラスは `info` を定義し、`check` で指摘のリストを返す。ルールは互いに
    独立しており、他のルールの出力を抑制しない。
    """

    info: RuleInfo
    # テストファイルを対象外にするか
    skip_test_files: bool = True

    @property
    def rule_id(self) -> str:
        return self.info.rule_id

    def check(self, ctx: RuleContext) -> List[Finding]:
        raise NotImplementedError

    def finding(
        self,
        ctx: RuleContext,
        anchor,
        message: str,
        function: Optional[FunctionDecl] = None,
        related: Sequence = ()
    ) -> Finding:
        """関数またはノードを起点とする指摘を作成する。"""
        return Finding(
            rule_id=self.info.rule_id,
            severity=self.info.severity,
            location=_location(ctx, anchor),
            message=message,
            cwe=self.info.cwe,
            function=function.name if function is not None else None,
            related_locations=tuple(_location(ctx, r) for r in related),
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.rule_id}>"


def _location(ctx: RuleContext, anchor) -> SourceLocation:
    span: Span = anchor.span
    return SourceLocation(
        file_path=ctx.path_of(anchor),
        start_line=span.start_line,
        end_line=span.end_line,
        start_column=span.start_col,
    )


def calls_in(ctx: RuleContext, root: Node) -> Iterator[Node]:
    """部分木内の呼び出し式。"""
    return (node for node in ctx.tree.walk(root.index) if node.is_call)
