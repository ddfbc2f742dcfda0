"""データ安全性ルール（算術オーバーフロー、unwrap、アドレス検証、キー衝突）。"""

from collections import defaultdict
from typing import Dict, List, Optional, Tuple
import re

from ..models.classification import StorageOpKind
from ..models.finding import Finding, Severity
from ..models.syntax import Node, NodeKind, SourceFile
from .base import Rule, RuleContext, RuleInfo

ARITHMETIC_OPERATORS = frozenset({"+", "-", "*", "+=", "-=", "*="})

FINANCIAL_NAME = re.compile(
    r"amount|balance|supply|price|fee|reward|stake|deposit|withdraw|fund|"
    r"collateral|debt|share|payment|total|allowance|liquidity|principal|interest",
    re.IGNORECASE,
)
LARGE_INTEGER_TYPE = re.compile(
    r"\b(Uint64|Uint128|Uint256|Uint512|Int64|Int128|Int256|Decimal|Decimal256|u64|u128|i128)\b"
)

ADDRESS_VALIDATION_METHODS = ("addr_validate", "addr_canonicalize")


class UncheckedArithmetic(Rule):
    """金額・大きな整数型に対する未チェックの +, -, * 演算。"""

    info = RuleInfo(
        rule_id="unchecked-arithmetic",
        title="Unchecked arithmetic",
        severity=Severity.WARNING,
        cwe="CWE-190",
        description=(
            "Plain arithmetic on token amounts or large integer types panics or "
            "wraps on overflow; use the checked_* variants."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        tree = ctx.tree
        findings = []
        for fn in ctx.functions(include_tests=not self.skip_test_files):
            if not fn.parameters:
                continue
            returns_response = "Response" in fn.return_type or "Result" in fn.return_type
            if not returns_response and not ctx.classifier.performs_storage_op(fn):
                continue

            for node in tree.function_nodes(fn):
                if node.kind != NodeKind.BINARY_OP or node.operator not in ARITHMETIC_OPERATORS:
                    continue
                if not any(self._is_sensitive(tree.node(o).text) for o in node.arguments):
                    continue
                findings.append(self.finding(
                    ctx, node,
                    f"Unchecked `{node.operator}` in `{node.text[:80]}` can overflow; "
                    "use checked arithmetic",
                    function=fn,
                ))
        return findings

    @staticmethod
    def _is_sensitive(text: str) -> bool:
        return bool(FINANCIAL_NAME.search(text) or LARGE_INTEGER_TYPE.search(text))


class UncheckedStorageUnwrap(Rule):
    """ストレージ読み出しの結果に対する unwrap()。"""

    info = RuleInfo(
        rule_id="unchecked-storage-unwrap",
        title="Unchecked storage unwrap",
        severity=Severity.WARNING,
        cwe="CWE-248",
        description=(
            "Unwrapping a storage read aborts the contract with an opaque panic "
            "instead of returning an error."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        tree = ctx.tree
        findings = []
        for fn in ctx.functions(include_tests=not self.skip_test_files):
            for node in tree.function_nodes(fn):
                if node.kind != NodeKind.METHOD_CALL or node.name != "unwrap":
                    continue
                if node.receiver is None:
                    continue
                receiver = tree.node(node.receiver)
                if ctx.classifier.classify_storage_op(receiver) != StorageOpKind.READ:
                    continue
                findings.append(self.finding(
                    ctx, node,
                    f"`{receiver.name}` result is unwrapped in `{fn.name}`; propagate the error with `?`",
                    function=fn,
                ))
        return findings


class MissingAddressValidation(Rule):
    """検証されていないアドレスを Addr::unchecked で生成している。"""

    info = RuleInfo(
        rule_id="missing-address-validation",
        title="Missing address validation",
        severity=Severity.WARNING,
        cwe="CWE-20",
        description=(
            "An address built with `Addr::unchecked` is never validated with "
            "`addr_validate` in the same function."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        include_tests = not self.skip_test_files
        tree = ctx.tree
        roots = ctx.entry_points(include_tests)

        findings = []
        for fn in ctx.with_callees(roots, include_tests):
            calls = [node for node in tree.function_nodes(fn) if node.is_call]
            if any(
                node.kind == NodeKind.METHOD_CALL
                and any(m in (node.name or "") for m in ADDRESS_VALIDATION_METHODS)
                for node in calls
            ):
                continue
            for node in calls:
                name = node.name or ""
                if "unchecked" not in name or "unchecked_into" in name:
                    continue
                findings.append(self.finding(
                    ctx, node,
                    f"`{fn.name}` builds an unchecked address with `{name}` and never calls `addr_validate`",
                    function=fn,
                ))
        return findings


class StorageKeyCollision(Rule):
    """同じファイル内の2つのストレージ宣言が同じキー文字列を使っている。"""

    info = RuleInfo(
        rule_id="storage-key-collision",
        title="Storage key collision",
        severity=Severity.ERROR,
        cwe="CWE-694",
        description="Two storage declarations share one namespace key and overwrite each other.",
    )

    # 他のルールと違い、テスト用のストレージ定義もキー衝突の対象にする
    skip_test_files = False

    def check(self, ctx: RuleContext) -> List[Finding]:
        findings = []
        for source_file in ctx.files(include_tests=not self.skip_test_files):
            by_key: Dict[str, List[Node]] = defaultdict(list)
            for node, key in self._declarations(ctx, source_file):
                by_key[key].append(node)

            for key, nodes in by_key.items():
                # 行順に並べ、非順序対ごとに先の宣言を起点として1件だけ報告する
                nodes.sort(key=lambda n: (n.span.start_line, n.span.start_col))
                for i, first in enumerate(nodes):
                    for second in nodes[i + 1:]:
                        findings.append(self.finding(
                            ctx, first,
                            f'Storage key "{key}" is also used by the declaration at '
                            f"line {second.span.start_line}",
                            related=[second],
                        ))
        return findings

    @staticmethod
    def _declarations(ctx: RuleContext, source_file: SourceFile) -> List[Tuple[Node, str]]:
        tree = ctx.tree
        candidates = list(tree.file_items(source_file))
        for fn_index in source_file.functions:
            candidates.extend(tree.function_nodes(tree.function(fn_index)))

        result = []
        for node in candidates:
            key: Optional[str] = ctx.classifier.classify_storage_declaration(node)
            if key is not None:
                result.append((node, key))
        return result
