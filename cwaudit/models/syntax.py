"""解析対象コードの構文モデル（アリーナ形式のイミュータブルな木）。

すべてのノードは `SyntaxTree` 内の整数インデックスで参照される。
ノード・関数・ファイルはビルド後に変更されないため、インデックスをキーにした
メモ化やスレッド間での読み取り共有をそのまま行える。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Sequence, Tuple


class NodeKind(Enum):
    """式ノードの種別。"""
    BINARY_OP = "binary_op"
    FIELD_ACCESS = "field_access"
    METHOD_CALL = "method_call"
    FREE_CALL = "free_call"
    MATCH = "match"
    LITERAL = "literal"
    PATH = "path"
    BLOCK = "block"  # 上記以外の複合式すべて


CALL_KINDS = (NodeKind.METHOD_CALL, NodeKind.FREE_CALL)


@dataclass(frozen=True)
class Span:
    """ソース上の範囲（行・列ともに1始まり、終端を含む）。"""
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def contains(self, other: "Span") -> bool:
        """otherがこの範囲に完全に含まれるかを判定する。"""
        return (
            (self.start_line, self.start_col) <= (other.start_line, other.start_col)
            and (other.end_line, other.end_col) <= (self.end_line, self.end_col)
        )

    @staticmethod
    def hull(spans: Sequence["Span"]) -> "Span":
        """複数の範囲をすべて覆う最小の範囲を返す。"""
        start = min((s.start_line, s.start_col) for s in spans)
        end = max((s.end_line, s.end_col) for s in spans)
        return Span(start[0], start[1], end[0], end[1])

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


@dataclass(frozen=True)
class Node:
    """式ノード。

    種別ごとに使うフィールドが異なる:
        BINARY_OP: operator, arguments=(左辺, 右辺)
        FIELD_ACCESS: name=フィールド名, receiver=コンテナ式
        METHOD_CALL: name=メソッド名, receiver, arguments
        FREE_CALL: name=呼び出し先パス, arguments
        MATCH: receiver=検査対象式, arms=各アームの本体
        LITERAL: name=値（文字列リテラルは引用符を除いた中身）
        PATH: name=パス文字列
        BLOCK: 構造体式ならname=構造体のパス、それ以外はNone
    """
    index: int
    kind: NodeKind
    text: str
    span: Span
    file: int
    parent: Optional[int] = None
    function: Optional[int] = None
    children: Tuple[int, ...] = ()
    name: Optional[str] = None
    operator: Optional[str] = None
    receiver: Optional[int] = None
    arguments: Tuple[int, ...] = ()
    arms: Tuple[int, ...] = ()

    @property
    def is_call(self) -> bool:
        return self.kind in CALL_KINDS

    @property
    def is_string_literal(self) -> bool:
        return self.kind == NodeKind.LITERAL and self.text.lstrip("br#").startswith('"')


@dataclass(frozen=True)
class Parameter:
    """関数の仮引数（パターンと宣言型のテキスト）。"""
    pattern: str
    type_text: str = ""

    @property
    def name(self) -> str:
        """`mut` などの修飾子を除いた束縛名。"""
        return self.pattern.replace("mut ", "").replace("&", "").strip()


@dataclass(frozen=True)
class FunctionDecl:
    """関数定義。"""
    index: int
    name: str
    file: int
    span: Span
    parameters: Tuple[Parameter, ...] = ()
    return_type: str = ""
    attributes: Tuple[str, ...] = ()
    body: Optional[int] = None

    def has_parameter(self, name: str) -> bool:
        return any(p.name == name for p in self.parameters)


@dataclass(frozen=True)
class SourceFile:
    """解析対象のソースファイル。"""
    index: int
    path: str
    functions: Tuple[int, ...] = ()
    items: Tuple[int, ...] = ()  # const/static初期化式などトップレベルの式


class SyntaxTree:
    """ファイル・関数・式ノードを保持するイミュータブルなアリーナ。"""

    def __init__(
        self,
        files: Sequence[SourceFile],
        functions: Sequence[FunctionDecl],
        nodes: Sequence[Node]
    ):
        self.files: Tuple[SourceFile, ...] = tuple(files)
        self.functions: Tuple[FunctionDecl, ...] = tuple(functions)
        self.nodes: Tuple[Node, ...] = tuple(nodes)

        self._functions_by_name: Dict[str, List[int]] = {}
        for fn in self.functions:
            self._functions_by_name.setdefault(fn.name, []).append(fn.index)

    def node(self, index: int) -> Node:
        return self.nodes[index]

    def function(self, index: int) -> FunctionDecl:
        return self.functions[index]

    def file_of(self, fn: FunctionDecl) -> SourceFile:
        return self.files[fn.file]

    def functions_named(self, name: str) -> List[FunctionDecl]:
        return [self.functions[i] for i in self._functions_by_name.get(name, [])]

    def walk(self, root: int) -> Iterator[Node]:
        """rootを含む部分木を前順で走査する。"""
        stack = [root]
        while stack:
            node = self.nodes[stack.pop()]
            yield node
            stack.extend(reversed(node.children))

    def function_nodes(self, fn: FunctionDecl) -> Iterator[Node]:
        """関数本体に含まれるすべてのノード。本体がなければ空。"""
        if fn.body is None:
            return iter(())
        return self.walk(fn.body)

    def file_items(self, source_file: SourceFile) -> Iterator[Node]:
        """関数外（const/static初期化式）のノード。"""
        for item in source_file.items:
            yield from self.walk(item)

    def __len__(self) -> int:
        return len(self.nodes)


@dataclass
class _NodeDraft:
    kind: NodeKind
    text: str
    span: Span
    children: List[int] = field(default_factory=list)
    name: Optional[str] = None
    operator: Optional[str] = None
    receiver: Optional[int] = None
    arguments: Tuple[int, ...] = ()
    arms: Tuple[int, ...] = ()
    parent: Optional[int] = None
    function: Optional[int] = None
    file: int = -1


class SyntaxTreeBuilder:
    """SyntaxTreeを下から上へ組み立てるビルダー。

    フロントエンドアダプタは `add_node` に明示的なテキストと範囲を渡す。
    範囲を省略した場合は、葉ノードには現在行の新しい列を、複合ノードには
    子ノードを覆う範囲を割り当てる（テストでの木の組み立て用）。
    """

    def __init__(self):
        self._files: List[Dict] = []
        self._functions: List[Dict] = []
        self._nodes: List[_NodeDraft] = []
        self._line = 1
        self._col = 1

    # ---- ファイル・関数 ----

    def add_file(self, path: str) -> int:
        self._files.append({"path": path, "functions": [], "items": []})
        return len(self._files) - 1

    def at_line(self, line: int) -> "SyntaxTreeBuilder":
        """以降に自動採番する葉ノードの行を設定する。"""
        self._line = line
        self._col = 1
        return self

    def add_function(
        self,
        file: int,
        name: str,
        parameters: Sequence = (),
        body: Optional[Sequence[int]] = None,
        return_type: str = "",
        attributes: Sequence[str] = (),
        span: Optional[Span] = None,
        body_node: Optional[int] = None
    ) -> int:
        """関数を登録し、本体の全ノードに所属関数を設定する。

        Args:
            file: 所属ファイルのインデックス
            name: 関数名
            parameters: Parameter、または(pattern, type)のタプルのシーケンス
            body: 本体の文となる式ノードのリスト（Blockで包まれる）
            return_type: 戻り値型のテキスト
            attributes: 属性テキストのリスト
            span: 関数全体の範囲（省略時は本体の範囲）
            body_node: 既に組み立て済みの本体ノード（bodyの代わり）

        Returns:
            関数のインデックス
        """
        params = tuple(
            p if isinstance(p, Parameter) else Parameter(*p) for p in parameters
        )
        if body_node is None and body is not None:
            body_node = self.block(list(body))

        index = len(self._functions)
        if body_node is not None:
            for node_index in self._subtree(body_node):
                self._nodes[node_index].function = index
            body_span = self._nodes[body_node].span
        else:
            body_span = self._next_span(name)

        self._functions.append({
            "name": name,
            "file": file,
            "span": span or body_span,
            "parameters": params,
            "return_type": return_type,
            "attributes": tuple(attributes),
            "body": body_node,
        })
        self._files[file]["functions"].append(index)
        if body_node is not None:
            self._assign_file(body_node, file)
        return index

    def add_item(self, file: int, node: int) -> int:
        """関数に属さないトップレベルの式（const/static初期化式）を登録する。"""
        self._files[file]["items"].append(node)
        self._assign_file(node, file)
        return node

    # ---- 低レベルAPI ----

    def add_node(
        self,
        kind: NodeKind,
        text: str,
        children: Sequence[int] = (),
        span: Optional[Span] = None,
        name: Optional[str] = None,
        operator: Optional[str] = None,
        receiver: Optional[int] = None,
        arguments: Sequence[int] = (),
        arms: Sequence[int] = ()
    ) -> int:
        children = list(children)
        if span is None:
            if children:
                span = Span.hull([self._nodes[c].span for c in children])
            else:
                span = self._next_span(text)

        index = len(self._nodes)
        self._nodes.append(_NodeDraft(
            kind=kind,
            text=text,
            span=span,
            children=children,
            name=name,
            operator=operator,
            receiver=receiver,
            arguments=tuple(arguments),
            arms=tuple(arms),
        ))
        for child in children:
            self._nodes[child].parent = index
        return index

    def text_of(self, index: int) -> str:
        return self._nodes[index].text

    # ---- 式の組み立てヘルパー ----

    def path(self, name: str) -> int:
        return self.add_node(NodeKind.PATH, name, name=name)

    def string(self, value: str) -> int:
        return self.add_node(NodeKind.LITERAL, f'"{value}"', name=value)

    def literal(self, text: str) -> int:
        return self.add_node(NodeKind.LITERAL, text, name=text)

    def field(self, container: int, name: str) -> int:
        return self.add_node(
            NodeKind.FIELD_ACCESS,
            f"{self.text_of(container)}.{name}",
            children=[container],
            name=name,
            receiver=container,
        )

    def method(self, receiver: int, name: str, args: Sequence[int] = ()) -> int:
        args = list(args)
        text = f"{self.text_of(receiver)}.{name}({self._join(args)})"
        return self.add_node(
            NodeKind.METHOD_CALL, text,
            children=[receiver] + args,
            name=name, receiver=receiver, arguments=args,
        )

    def call(self, callee: str, args: Sequence[int] = ()) -> int:
        args = list(args)
        return self.add_node(
            NodeKind.FREE_CALL, f"{callee}({self._join(args)})",
            children=args, name=callee, arguments=args,
        )

    def binary(self, left: int, operator: str, right: int) -> int:
        text = f"{self.text_of(left)} {operator} {self.text_of(right)}"
        return self.add_node(
            NodeKind.BINARY_OP, text,
            children=[left, right], operator=operator, arguments=(left, right),
        )

    def match(self, scrutinee: int, arms: Sequence[int]) -> int:
        arms = list(arms)
        arm_text = ", ".join(self.text_of(a) for a in arms)
        return self.add_node(
            NodeKind.MATCH, f"match {self.text_of(scrutinee)} {{ {arm_text} }}",
            children=[scrutinee] + arms, receiver=scrutinee, arms=arms,
        )

    def ref(self, inner: int) -> int:
        return self.add_node(NodeKind.BLOCK, f"&{self.text_of(inner)}", children=[inner])

    def expr(self, text: str, children: Sequence[int] = ()) -> int:
        return self.add_node(NodeKind.BLOCK, text, children=children)

    def struct(self, path: str, fields: Sequence[int] = ()) -> int:
        """`Path { .. }` 形式の構造体式。"""
        fields = list(fields)
        text = f"{path} {{ {self._join(fields)} }}" if fields else f"{path} {{}}"
        return self.add_node(NodeKind.BLOCK, text, children=fields, name=path)

    def block(self, statements: Sequence[int]) -> int:
        statements = list(statements)
        text = "{ " + "; ".join(self.text_of(s) for s in statements) + " }"
        return self.add_node(NodeKind.BLOCK, text, children=statements)

    # ---- 確定 ----

    def build(self) -> SyntaxTree:
        nodes = [
            Node(
                index=i,
                kind=d.kind,
                text=d.text,
                span=d.span,
                file=d.file,
                parent=d.parent,
                function=d.function,
                children=tuple(d.children),
                name=d.name,
                operator=d.operator,
                receiver=d.receiver,
                arguments=d.arguments,
                arms=d.arms,
            )
            for i, d in enumerate(self._nodes)
        ]
        functions = [FunctionDecl(index=i, **f) for i, f in enumerate(self._functions)]
        files = [
            SourceFile(
                index=i,
                path=f["path"],
                functions=tuple(f["functions"]),
                items=tuple(f["items"]),
            )
            for i, f in enumerate(self._files)
        ]
        return SyntaxTree(files, functions, nodes)

    # ---- 内部処理 ----

    def _join(self, args: Sequence[int]) -> str:
        return ", ".join(self.text_of(a) for a in args)

    def _next_span(self, text: str) -> Span:
        width = max(len(text), 1)
        span = Span(self._line, self._col, self._line, self._col + width - 1)
        self._col += width + 1
        return span

    def _subtree(self, root: int) -> Iterator[int]:
        stack = [root]
        while stack:
            index = stack.pop()
            yield index
            stack.extend(self._nodes[index].children)

    def _assign_file(self, root: int, file: int) -> None:
        for index in self._subtree(root):
            self._nodes[index].file = file
