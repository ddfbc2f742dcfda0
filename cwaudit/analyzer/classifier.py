"""関数・式へのドメイン上の役割付け（エントリーポイント、ストレージ操作など）。"""

from typing import Dict, Iterator, List, Optional
import logging
import re

from ..models.classification import (
    ENTRY_POINT_NAMES,
    STORAGE_METHODS,
    EntryKind,
    StorageOpKind,
)
from ..models.syntax import FunctionDecl, Node, NodeKind, SyntaxTree

logger = logging.getLogger(__name__)

_MSG_TOKEN = re.compile(r"\bmsg\b")


class EntityClassifier:
    """構文木上の純粋な分類関数群。

    結果はノード・関数のインデックスをキーにキャッシュする。木はイミュータブル
    なのでキャッシュの無効化は発生しない。
    """

    def __init__(self, tree: SyntaxTree):
        """分類器を初期化する。

        Args:
            tree: 解析対象の構文木
        """
        self.tree = tree
        self._entry_cache: Dict[int, Optional[EntryKind]] = {}
        self._sender_cache: Dict[int, List[Node]] = {}

    # ---- エントリーポイント ----

    def classify_entry_point(self, fn: FunctionDecl) -> Optional[EntryKind]:
        """関数をエントリーポイント種別に分類する。

        属性パスに "entry_point" を含む場合は名前で分類する。属性がフロント
        エンドから見えない場合に備え、予約名との完全一致かつ引数2個以上の
        関数も同じ種別に分類する。

        Args:
            fn: 対象関数

        Returns:
            EntryKind、エントリーポイントでなければNone
        """
        if fn.index in self._entry_cache:
            return self._entry_cache[fn.index]

        kind = ENTRY_POINT_NAMES.get(fn.name)
        if kind is not None:
            has_attribute = any("entry_point" in attr for attr in fn.attributes)
            if not has_attribute and len(fn.parameters) < 2:
                kind = None

        self._entry_cache[fn.index] = kind
        return kind

    # ---- ストレージ ----

    def classify_storage_op(self, node: Node) -> Optional[StorageOpKind]:
        """メソッド呼び出しをストレージ操作に分類する（識別子の完全一致）。"""
        if node.kind != NodeKind.METHOD_CALL:
            return None
        return STORAGE_METHODS.get(node.name or "")

    def classify_storage_declaration(self, node: Node) -> Optional[str]:
        """トップレベルのストレージハンドル宣言ならキー文字列を返す。

        `Item::new("config")` のように、呼び出し先パスが "::new" で終わり、
        第1引数が文字列リテラルで、引数を持つ関数の中にない呼び出しが対象。
        """
        if node.kind != NodeKind.FREE_CALL:
            return None
        if not (node.name or "").endswith("::new"):
            return None
        if not node.arguments:
            return None
        first = self.tree.node(node.arguments[0])
        if not first.is_string_literal:
            return None
        if node.function is not None and self.tree.function(node.function).parameters:
            return None
        return first.name

    def storage_ops(self, fn: FunctionDecl, *kinds: StorageOpKind) -> Iterator[Node]:
        """関数内のストレージ操作呼び出し（kinds指定時はその種別のみ）。"""
        for node in self.tree.function_nodes(fn):
            op = self.classify_storage_op(node)
            if op is not None and (not kinds or op in kinds):
                yield node

    def performs_storage_op(self, fn: FunctionDecl, *kinds: StorageOpKind) -> bool:
        return next(self.storage_ops(fn, *kinds), None) is not None

    # ---- 呼び出し元アクセス ----

    def classify_sender_access(self, node: Node) -> bool:
        """`info.sender` 形式の呼び出し元アクセスかを判定する。

        型解決ができないため、コンテナ式のテキストに "info" を含むかどうかで
        判定する。変数名を変えたコードでは稀に誤判定となる。
        """
        if node.kind != NodeKind.FIELD_ACCESS or node.name != "sender":
            return False
        if node.receiver is None:
            return False
        return "info" in self.tree.node(node.receiver).text

    def sender_accesses(self, fn: FunctionDecl) -> List[Node]:
        """関数内の呼び出し元アクセス式。"""
        if fn.index not in self._sender_cache:
            self._sender_cache[fn.index] = [
                node for node in self.tree.function_nodes(fn)
                if self.classify_sender_access(node)
            ]
        return self._sender_cache[fn.index]

    # ---- メッセージディスパッチ ----

    def classify_dispatch_match(self, node: Node, handler: FunctionDecl) -> bool:
        """ハンドラ内のmatch式がメッセージのディスパッチかを判定する。

        検査対象式のテキストが最後の仮引数名と一致するか、それを含めば真。
        引数名が変えられている場合に備え、単独の "msg" トークンを含む場合も
        真とする。
        """
        if node.kind != NodeKind.MATCH or node.receiver is None:
            return False
        scrutinee = self.tree.node(node.receiver).text.strip()

        if handler.parameters:
            message_param = handler.parameters[-1].name
            if message_param and (scrutinee == message_param or message_param in scrutinee):
                return True

        return bool(_MSG_TOKEN.search(scrutinee))

    def dispatch_matches(self, handler: FunctionDecl) -> List[Node]:
        return [
            node for node in self.tree.function_nodes(handler)
            if node.kind == NodeKind.MATCH and self.classify_dispatch_match(node, handler)
        ]

    # ---- 汎用 ----

    def mentions(self, fn: FunctionDecl, needle: str) -> bool:
        """関数内の式がneedleを含む名前かリテラルを持つか。

        本体の生テキストではなく式ノードだけを見るので、コメントは対象外。
        """
        for node in self.tree.function_nodes(fn):
            if node.kind == NodeKind.LITERAL:
                if needle in node.text:
                    return True
            elif node.name and needle in node.name:
                return True
        return False
