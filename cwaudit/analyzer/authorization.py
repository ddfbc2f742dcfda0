"""関数に認可ゲートが構造的に存在するかの判定。

認可チェックの検出は独立した戦略関数の順序付きリストとして表現し、
いずれか1つが成立すれば認可ありとする（短絡評価のOR）。戦略単体での
追加・削除が他の戦略に影響しないよう、各戦略は (evaluator, fn) -> bool の
純粋関数として定義する。

いくつかの戦略は「呼び出し元アクセス」と無関係な "Unauthorized" を含む式
（コメントは含まない）の共起を認可の証拠として扱う。両者のデータフロー・
制御フロー上の関係は検証しないため、誤検知・見逃しの双方の原因になりうる。
これは精度と再現率のトレードオフとして意図的に受け入れている。
"""

from fnmatch import fnmatchcase
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging

from ..models.classification import StorageOpKind
from ..models.syntax import FunctionDecl, Node, NodeKind, SyntaxTree
from .call_graph import CallGraphResolver
from .classifier import EntityClassifier

logger = logging.getLogger(__name__)

UNAUTHORIZED_MARKER = "Unauthorized"

# ガード用メソッド名（部分一致）
GUARD_METHOD_PATTERNS: Tuple[str, ...] = (
    "assert*",
    "ensure*",
    "require*",
    "*check*auth*",
    "*verify*owner*",
    "*only*owner*",
    "is_admin",
    "can_execute",
    "can_modify",
    "check_permission",
    "validate_sender",
    "deduct_allowance",
)

# ガード用フリー関数名（部分一致）
GUARD_FUNCTION_PATTERNS: Tuple[str, ...] = (
    "check_auth",
    "verify_sender",
    "assert_owner",
    "ensure_admin",
    "only_admin",
    "only_owner",
    "require_admin",
    "is_admin",
    "can_execute",
    "can_modify",
    "check_permission",
    "validate_sender",
    "assert_admin",
    "deduct_allowance",
)

# 特権設定を読むストレージのレシーバー名
PRIVILEGED_STORAGE_MARKERS: Tuple[str, ...] = ("ADMIN", "OWNER")

# 比較の被演算子から剥がすラッパー（参照・複製・文字列化）
_TRANSPARENT_METHODS = frozenset({"clone", "as_str", "as_ref", "to_string", "as_bytes"})


def matches_any(name: str, patterns: Sequence[str]) -> bool:
    """名前がいずれかのパターンに部分一致するか（"*" はワイルドカード）。"""
    return any(fnmatchcase(name, f"*{pattern}*") for pattern in patterns)


AuthStrategy = Callable[["AuthorizationEvaluator", FunctionDecl], bool]


class AuthorizationEvaluator:
    """関数単位の認可チェック判定。

    判定はすべて副作用のない全域関数で、構造が曖昧・解決不能な場合は
    「認可なし」（フラグを立てる側）に倒れる。
    """

    def __init__(
        self,
        tree: SyntaxTree,
        classifier: EntityClassifier,
        resolver: CallGraphResolver,
        strategies: Optional[Sequence[AuthStrategy]] = None
    ):
        """評価器を初期化する。

        Args:
            tree: 解析対象の構文木
            classifier: エンティティ分類器
            resolver: 呼び出し先解決器
            strategies: 認可検出戦略のリスト（省略時はDEFAULT_STRATEGIES）
        """
        self.tree = tree
        self.classifier = classifier
        self.resolver = resolver
        self.strategies: Tuple[AuthStrategy, ...] = tuple(
            strategies if strategies is not None else DEFAULT_STRATEGIES
        )
        self._direct_cache: Dict[int, bool] = {}
        self._transitive_cache: Dict[int, bool] = {}
        self._self_serve_cache: Dict[int, bool] = {}

    def has_authorization_check(self, fn: FunctionDecl) -> bool:
        """関数本体にいずれかの認可パターンが存在するか。"""
        if fn.index not in self._direct_cache:
            found = False
            if fn.body is not None:
                for strategy in self.strategies:
                    if strategy(self, fn):
                        logger.debug(f"{fn.name}: authorization via {strategy.__name__}")
                        found = True
                        break
            self._direct_cache[fn.index] = found
        return self._direct_cache[fn.index]

    def has_authorization_check_transitive(self, fn: FunctionDecl) -> bool:
        """関数自身、または1ホップ先の呼び出し先のいずれかに認可があるか。

        呼び出し先の呼び出し先は見ない（再帰しない）。
        """
        if fn.index not in self._transitive_cache:
            result = self.has_authorization_check(fn) or any(
                self.has_authorization_check(target)
                for target in self.resolver.callees(fn)
            )
            self._transitive_cache[fn.index] = result
        return self._transitive_cache[fn.index]

    def is_self_serve_handler(self, fn: FunctionDecl) -> bool:
        """呼び出し元自身のレコードだけを書き換えるハンドラか。

        ストレージ書き込みの引数に呼び出し元アクセスが含まれ（または
        `sender` 引数がテキストとして含まれ）、かつADMIN/OWNERを名前に持つ
        ストレージを読まない場合に真。
        """
        if fn.index not in self._self_serve_cache:
            self._self_serve_cache[fn.index] = (
                self._writes_keyed_by_sender(fn) and not self._reads_privileged_storage(fn)
            )
        return self._self_serve_cache[fn.index]

    # ---- 共通ヘルパー ----

    def arguments_contain_sender(self, call: Node, fn: FunctionDecl) -> bool:
        """呼び出しの引数リストが呼び出し元アクセスを範囲として含むか。

        `&info.sender` のような参照式では内側の式のテキストが変わるため、
        テキスト比較ではなくソース範囲の包含で判定する。
        """
        senders = self.classifier.sender_accesses(fn)
        if not senders:
            return False
        for arg_index in call.arguments:
            arg_span = self.tree.node(arg_index).span
            if any(arg_span.contains(sender.span) for sender in senders):
                return True
        return False

    def is_sender_operand(self, node: Node) -> bool:
        """比較の被演算子が（参照・複製を剥がして）呼び出し元アクセスか。"""
        current: Optional[Node] = node
        while current is not None:
            if self.classifier.classify_sender_access(current):
                return True
            current = self._unwrap(current)
        return False

    def has_unauthorized_text(self, fn: FunctionDecl) -> bool:
        return self.classifier.mentions(fn, UNAUTHORIZED_MARKER)

    def _unwrap(self, node: Node) -> Optional[Node]:
        if node.kind == NodeKind.METHOD_CALL and node.name in _TRANSPARENT_METHODS:
            return self.tree.node(node.receiver) if node.receiver is not None else None
        if node.kind == NodeKind.BLOCK and len(node.children) == 1:
            if node.text[:1] in ("&", "*", "("):
                return self.tree.node(node.children[0])
        return None

    def _writes_keyed_by_sender(self, fn: FunctionDecl) -> bool:
        has_sender_param = fn.has_parameter("sender")
        for call in self.classifier.storage_ops(fn, StorageOpKind.WRITE):
            if self.arguments_contain_sender(call, fn):
                return True
            if has_sender_param and any(
                "sender" in self.tree.node(arg).text for arg in call.arguments
            ):
                return True
        return False

    def _reads_privileged_storage(self, fn: FunctionDecl) -> bool:
        for call in self.classifier.storage_ops(fn, StorageOpKind.READ):
            if call.receiver is None:
                continue
            receiver_text = self.tree.node(call.receiver).text
            if any(marker in receiver_text for marker in PRIVILEGED_STORAGE_MARKERS):
                return True
        return False


# ============================================================
# 認可検出戦略
# ============================================================

def sender_comparison(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """`info.sender` を被演算子に持つ ==/!= 比較。"""
    for node in evaluator.tree.function_nodes(fn):
        if node.kind != NodeKind.BINARY_OP or node.operator not in ("==", "!="):
            continue
        if any(evaluator.is_sender_operand(evaluator.tree.node(o)) for o in node.arguments):
            return True
    return False


def guard_method_call(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """assert/ensure/require系などのガード用メソッド呼び出し。"""
    return any(
        node.kind == NodeKind.METHOD_CALL and matches_any(node.name or "", GUARD_METHOD_PATTERNS)
        for node in evaluator.tree.function_nodes(fn)
    )


def sender_with_unauthorized_error(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """呼び出し元アクセスと "Unauthorized" エラーの共起。"""
    return bool(evaluator.classifier.sender_accesses(fn)) and evaluator.has_unauthorized_text(fn)


def guard_function_call(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """check_auth/ensure_admin系などのガード用フリー関数呼び出し。"""
    return any(
        node.kind == NodeKind.FREE_CALL and matches_any(node.name or "", GUARD_FUNCTION_PATTERNS)
        for node in evaluator.tree.function_nodes(fn)
    )


def sender_keyed_membership(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """呼び出し元をキーにしたストレージ読み出し + "Unauthorized"（メンバー認可）。"""
    if not evaluator.has_unauthorized_text(fn):
        return False
    return any(
        evaluator.arguments_contain_sender(call, fn)
        for call in evaluator.classifier.storage_ops(fn, StorageOpKind.READ)
    )


def status_gate(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """status フィールドによる状態遷移ゲート。"""
    tree = evaluator.tree
    nodes = list(tree.function_nodes(fn))
    if not any(n.kind == NodeKind.FIELD_ACCESS and n.name == "status" for n in nodes):
        return False

    for node in nodes:
        if node.kind == NodeKind.BINARY_OP and node.operator in ("==", "!="):
            if any("status" in tree.node(o).text for o in node.arguments):
                return True
        if node.kind == NodeKind.MATCH and node.receiver is not None:
            if "status" in tree.node(node.receiver).text:
                return True
    return False


def sender_parameter(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """ディスパッチャが抽出した `sender` 引数 + "Unauthorized"。"""
    return fn.has_parameter("sender") and evaluator.has_unauthorized_text(fn)


def permission_gate(evaluator: AuthorizationEvaluator, fn: FunctionDecl) -> bool:
    """投票権・権限照会による認可。"""
    for node in evaluator.tree.function_nodes(fn):
        if not node.is_call:
            continue
        name = node.name or ""
        if "voting_power" in name:
            return True
        if node.kind == NodeKind.METHOD_CALL and "is_permitted" in name:
            return True
    return False


DEFAULT_STRATEGIES: List[AuthStrategy] = [
    sender_comparison,
    guard_method_call,
    sender_with_unauthorized_error,
    guard_function_call,
    sender_keyed_membership,
    status_gate,
    sender_parameter,
    permission_gate,
]
