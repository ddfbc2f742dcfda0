"""tree-sitterを使用したRustソースコードの構文モデルへの変換。"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Set, Tuple
import logging
import re

from tree_sitter import Language, Parser
import tree_sitter_rust as tsrust

from ..models.syntax import NodeKind, Parameter, Span, SyntaxTree, SyntaxTreeBuilder

logger = logging.getLogger(__name__)

RUST_LANGUAGE = Language(tsrust.language())

LITERAL_TYPES = frozenset({
    "string_literal",
    "raw_string_literal",
    "char_literal",
    "integer_literal",
    "float_literal",
    "boolean_literal",
})

PATH_TYPES = frozenset({"identifier", "scoped_identifier", "self", "crate", "super", "metavariable"})

# 式として扱わないノード
SKIPPED_TYPES = frozenset({
    "line_comment",
    "block_comment",
    "attribute_item",
    "inner_attribute_item",
    "use_declaration",
    "closure_parameters",
    "type_identifier",
    "primitive_type",
    "type_arguments",
    "type_parameters",
    "lifetime",
    "where_clause",
    "label",
    "mutable_specifier",
})

# パターン・型を保持するフィールド（式の子として扱わない）
SKIPPED_FIELDS = ("pattern", "type", "parameters", "type_arguments", "type_parameters", "return_type")

_STRING_BODY = re.compile(r'^b?r?(#*)"(.*)"\1$', re.DOTALL)

# マクロ引数を式リストとして再パースするためのラッパー
_MACRO_PREFIX = "fn __macro_args() { ("
_MACRO_SUFFIX = ",); }"


class RustParseError(Exception):
    """Rustソースの読み込み・パース時のエラー。"""
    pass


def node_text(source: bytes, node) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def string_literal_value(text: str) -> str:
    """文字列リテラルのテキストから引用符を除いた中身を返す。"""
    match = _STRING_BODY.match(text)
    return match.group(2) if match else text


class RustFrontend:
    """Rustソースを解析し、SyntaxTreeを構築するフロントエンド。

    tree-sitterのエラー回復により、構文エラーを含むファイルも解析可能な
    部分だけ変換する。読み込めないファイルはRustParseErrorとなる。
    """

    def __init__(self):
        self.parser = Parser(RUST_LANGUAGE)
        self.failed_files: List[str] = []

    def parse_source(self, source, path: str = "<memory>") -> SyntaxTree:
        """ソース文字列を1ファイル分の構文木に変換する。

        Args:
            source: Rustソース（strまたはbytes）
            path: ファイルパス（位置情報とスコープ判定に使用）

        Returns:
            構文木
        """
        builder = SyntaxTreeBuilder()
        self._add_source(builder, _to_bytes(source), path)
        return builder.build()

    def parse_file(self, path: str) -> SyntaxTree:
        """1ファイルを構文木に変換する。

        Raises:
            RustParseError: ファイルが読み込めない場合
        """
        builder = SyntaxTreeBuilder()
        self._add_source(builder, _read(path), path)
        return builder.build()

    def parse_paths(
        self,
        paths: Iterable[str],
        progress=None,
        base_dirs: Sequence[str] = ()
    ) -> SyntaxTree:
        """複数ファイルを1つの構文木に変換する。

        読み込めないファイルは警告を出してスキップし、failed_filesに記録する。
        base_dirs配下のファイルは、そのディレクトリからの相対パスで登録する。

        Args:
            paths: Rustソースファイルのパス
            progress: 1ファイルごとにupdate(path, ok)を呼ぶ進捗ロガー（省略可）
            base_dirs: 解析ルートのディレクトリ

        Returns:
            全ファイルを含む構文木
        """
        builder = SyntaxTreeBuilder()
        self.failed_files = []
        roots = [Path(d) for d in base_dirs if Path(d).is_dir()]

        for path in paths:
            ok = True
            try:
                self._add_source(builder, _read(path), _display_path(Path(path), roots))
            except RustParseError as e:
                logger.warning(f"Skipping {path}: {e}")
                self.failed_files.append(str(path))
                ok = False
            if progress is not None:
                progress.update(str(path), ok=ok)

        return builder.build()

    def _add_source(self, builder: SyntaxTreeBuilder, source: bytes, path: str) -> None:
        tree = self.parser.parse(source)
        root = tree.root_node
        if root.has_error:
            logger.debug(f"{path}: syntax errors present, converting recoverable parts")

        file_index = builder.add_file(path)
        converter = _Converter(self.parser, builder, source)

        functions = 0
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "function_item":
                converter.add_function(file_index, node)
                functions += 1
            elif node.type in ("const_item", "static_item"):
                value = node.child_by_field_name("value")
                if value is not None:
                    builder.add_item(file_index, converter.convert(value))
            stack.extend(reversed(node.named_children))

        logger.debug(f"{path}: {functions} functions")


class _Converter:
    """tree-sitterのノードをSyntaxTreeBuilderのノードへ変換する。

    マクロ引数の再パースでは、ラッパー内の座標を元ファイルの座標へ戻すため
    親の変換器と基準位置を持つ。
    """

    def __init__(
        self,
        parser: Parser,
        builder: SyntaxTreeBuilder,
        source: bytes,
        parent: Optional["_Converter"] = None,
        origin: Tuple[int, int] = (0, 0),
        prefix_width: int = 0
    ):
        self.parser = parser
        self.builder = builder
        self.source = source
        self.parent = parent
        self.origin = origin
        self.prefix_width = prefix_width

    # ---- 関数 ----

    def add_function(self, file_index: int, node) -> int:
        name_node = node.child_by_field_name("name")
        name = self.text(name_node) if name_node is not None else ""

        return_node = node.child_by_field_name("return_type")
        body = node.child_by_field_name("body")

        return self.builder.add_function(
            file_index,
            name,
            parameters=self._parameters(node.child_by_field_name("parameters")),
            return_type=self.text(return_node) if return_node is not None else "",
            attributes=self._attributes(node),
            span=self.span(node),
            body_node=self.convert(body) if body is not None else None,
        )

    def _parameters(self, node) -> List[Parameter]:
        if node is None:
            return []
        params = []
        for child in node.named_children:
            if child.type == "parameter":
                pattern = child.child_by_field_name("pattern")
                type_node = child.child_by_field_name("type")
                params.append(Parameter(
                    self.text(pattern) if pattern is not None else "",
                    self.text(type_node) if type_node is not None else "",
                ))
            elif child.type == "self_parameter":
                params.append(Parameter("self", ""))
        return params

    def _attributes(self, node) -> List[str]:
        attributes = []
        sibling = node.prev_named_sibling
        while sibling is not None and sibling.type in ("attribute_item", "line_comment", "block_comment"):
            if sibling.type == "attribute_item":
                attributes.append(self.text(sibling))
            sibling = sibling.prev_named_sibling
        attributes.reverse()
        return attributes

    # ---- 式 ----

    def convert(self, node) -> int:
        """式ノードを変換し、ビルダー上のインデックスを返す。"""
        kind = node.type

        if kind in ("binary_expression", "compound_assignment_expr"):
            return self._binary(node)
        if kind == "field_expression":
            return self._field(node)
        if kind == "call_expression":
            return self._call(node)
        if kind == "macro_invocation":
            return self._macro(node)
        if kind == "match_expression":
            return self._match(node)
        if kind in LITERAL_TYPES:
            text = self.text(node)
            value = string_literal_value(text) if "string" in kind else text
            return self._add(NodeKind.LITERAL, node, name=value)
        if kind in PATH_TYPES:
            return self._add(NodeKind.PATH, node, name=self.text(node))
        if kind == "struct_expression":
            struct_name = node.child_by_field_name("name")
            return self._generic(node, name=self.text(struct_name) if struct_name is not None else None)

        return self._generic(node)

    def _generic(self, node, name: Optional[str] = None) -> int:
        children = [self.convert(c) for c in self._expression_children(node)]
        return self._add(NodeKind.BLOCK, node, children=children, name=name)

    def _binary(self, node) -> int:
        left_node = node.child_by_field_name("left")
        right_node = node.child_by_field_name("right")
        if left_node is None or right_node is None:
            return self._generic(node)
        left = self.convert(left_node)
        right = self.convert(right_node)
        operator = node.child_by_field_name("operator")
        return self._add(
            NodeKind.BINARY_OP, node,
            children=[left, right],
            operator=self.text(operator) if operator is not None else None,
            arguments=(left, right),
        )

    def _field(self, node) -> int:
        value = node.child_by_field_name("value")
        if value is None:
            return self._generic(node)
        receiver = self.convert(value)
        field_node = node.child_by_field_name("field")
        return self._add(
            NodeKind.FIELD_ACCESS, node,
            children=[receiver],
            name=self.text(field_node) if field_node is not None else "",
            receiver=receiver,
        )

    def _call(self, node) -> int:
        callee = node.child_by_field_name("function")
        args_node = node.child_by_field_name("arguments")

        # `x.load::<T>()` はgeneric_functionに包まれたfield_expression
        target = callee
        if target is not None and target.type == "generic_function":
            target = target.child_by_field_name("function")
        if target is None:
            return self._generic(node)

        method = target.child_by_field_name("field") if target.type == "field_expression" else None
        if method is not None:
            receiver = self.convert(target.child_by_field_name("value"))
            args = self._arguments(args_node)
            return self._add(
                NodeKind.METHOD_CALL, node,
                children=[receiver] + args,
                name=self.text(method),
                receiver=receiver,
                arguments=args,
            )

        args = self._arguments(args_node)
        return self._add(
            NodeKind.FREE_CALL, node,
            children=args,
            name=self.text(target),
            arguments=args,
        )

    def _arguments(self, node) -> List[int]:
        if node is None:
            return []
        return [self.convert(c) for c in node.named_children if c.type not in SKIPPED_TYPES]

    def _macro(self, node) -> int:
        macro = node.child_by_field_name("macro")
        name = (self.text(macro) if macro is not None else "") + "!"
        token_tree = next((c for c in node.named_children if c.type == "token_tree"), None)
        args = self._macro_arguments(token_tree) if token_tree is not None else []
        return self._add(NodeKind.FREE_CALL, node, children=args, name=name, arguments=args)

    def _macro_arguments(self, token_tree) -> List[int]:
        """`(...)` / `[...]` のトークン木をカンマ区切りの式リストとして再パースする。"""
        raw = self.text(token_tree)
        if len(raw) < 2 or raw[0] not in "([":
            return []
        inner = raw[1:-1].rstrip().rstrip(",")
        if not inner.strip():
            return []

        wrapped = (_MACRO_PREFIX + inner + _MACRO_SUFFIX).encode("utf-8")
        tree = self.parser.parse(wrapped)
        if tree.root_node.has_error:
            logger.debug(f"Macro arguments not parseable as expressions: {raw[:60]}")
            return []

        tuple_node = _first_of_type(tree.root_node, "tuple_expression")
        if tuple_node is None:
            return []

        row, col = token_tree.start_point
        child = _Converter(
            self.parser, self.builder, wrapped,
            parent=self,
            origin=(row, col + 1),
            prefix_width=len(_MACRO_PREFIX.encode("utf-8")),
        )
        return [
            child.convert(c) for c in tuple_node.named_children
            if c.type not in SKIPPED_TYPES
        ]

    def _match(self, node) -> int:
        value = node.child_by_field_name("value")
        if value is None:
            return self._generic(node)
        scrutinee = self.convert(value)
        arms = []
        body = node.child_by_field_name("body")
        if body is not None:
            for arm in body.named_children:
                if arm.type not in ("match_arm", "last_match_arm"):
                    continue
                value = arm.child_by_field_name("value")
                if value is not None:
                    arms.append(self.convert(value))
        return self._add(
            NodeKind.MATCH, node,
            children=[scrutinee] + arms,
            receiver=scrutinee,
            arms=arms,
        )

    def _expression_children(self, node):
        excluded: Set[Tuple[int, int, str]] = set()
        for field_name in SKIPPED_FIELDS:
            for child in node.children_by_field_name(field_name):
                excluded.add(_key(child))

        for child in node.named_children:
            if child.type in SKIPPED_TYPES or child.type.endswith("_item"):
                continue
            if child.type.endswith("_type") or child.type.endswith("_pattern"):
                continue
            if _key(child) in excluded:
                continue
            yield child

    # ---- 位置・テキスト ----

    def _add(self, kind: NodeKind, node, children=(), **fields) -> int:
        return self.builder.add_node(
            kind, self.text(node), children=children, span=self.span(node), **fields
        )

    def text(self, node) -> str:
        return node_text(self.source, node)

    def span(self, node) -> Span:
        start_row, start_col = self._map(node.start_point)
        end_row, end_col = self._map(node.end_point)
        return Span(start_row + 1, start_col + 1, end_row + 1, max(end_col, 1))

    def _map(self, point) -> Tuple[int, int]:
        row, col = point
        if self.parent is None:
            return row, col
        origin_row, origin_col = self.origin
        if row == 0:
            outer = (origin_row, origin_col + col - self.prefix_width)
        else:
            outer = (origin_row + row, col)
        return self.parent._map(outer)


def _key(node) -> Tuple[int, int, str]:
    return (node.start_byte, node.end_byte, node.type)


def _first_of_type(root, node_type: str):
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == node_type:
            return node
        stack.extend(reversed(node.children))
    return None


def _to_bytes(source) -> bytes:
    if isinstance(source, bytes):
        return source
    return source.encode("utf-8")


def _read(path) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise RustParseError(f"Cannot read {path}: {e}") from e


def _display_path(path: Path, roots: Sequence[Path]) -> str:
    """解析ルートからの相対パス（どのルートにも属さなければそのまま）。"""
    for root in roots:
        try:
            return path.relative_to(root).as_posix()
        except ValueError:
            continue
    return str(path)
