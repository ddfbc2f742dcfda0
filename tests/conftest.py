"""テスト共通のフィクスチャと構文木ビルダー。"""

from pathlib import Path
import logging
from typing import Optional, Sequence

import pytest

from cwaudit.analyzer.scope import ScopeFilter
from cwaudit.models.syntax import SyntaxTree, SyntaxTreeBuilder
from cwaudit.rules.base import RuleContext

FIXTURES_DIR = Path(__file__).parent / "fixtures"

EXECUTE_PARAMS = [
    ("deps", "DepsMut"),
    ("env", "Env"),
    ("info", "MessageInfo"),
    ("msg", "ExecuteMsg"),
]
HANDLER_PARAMS = [
    ("deps", "DepsMut"),
    ("info", "MessageInfo"),
]
RESULT_TYPE = "Result<Response, ContractError>"


class ContractBuilder:
    """CosmWasmらしい関数・式を短く組み立てるためのヘルパー。"""

    def __init__(self, path: str = "src/contract.rs"):
        self.b = SyntaxTreeBuilder()
        self.file = self.b.add_file(path)

    def add_file(self, path: str) -> int:
        return self.b.add_file(path)

    # ---- 式 ----

    def sender(self) -> int:
        """`info.sender`"""
        return self.b.field(self.b.path("info"), "sender")

    def storage(self) -> int:
        """`deps.storage`"""
        return self.b.field(self.b.path("deps"), "storage")

    def save(self, item: str = "CONFIG", key: Optional[int] = None, value: str = "config") -> int:
        """`ITEM.save(deps.storage, [key,] &value)`"""
        args = [self.storage()]
        if key is not None:
            args.append(key)
        args.append(self.b.ref(self.b.path(value)))
        return self.b.method(self.b.path(item), "save", args)

    def load(self, item: str = "CONFIG") -> int:
        """`ITEM.load(deps.storage)`"""
        return self.b.method(self.b.path(item), "load", [self.storage()])

    def remove(self, item: str = "CONFIG") -> int:
        return self.b.method(self.b.path(item), "remove", [self.storage()])

    def unauthorized(self) -> int:
        """`Err(ContractError::Unauthorized {})`"""
        error = self.b.struct("ContractError::Unauthorized")
        return self.b.call("Err", [error])

    def ok(self) -> int:
        return self.b.call("Ok", [self.b.call("Response::new")])

    def declaration(self, line: int, constructor: str, key: str) -> int:
        """`pub const X: Item<..> = Item::new("key");` を指定行に登録する。"""
        self.b.at_line(line)
        node = self.b.call(constructor, [self.b.string(key)])
        return self.b.add_item(self.file, node)

    # ---- 関数 ----

    def entry(
        self,
        name: str,
        body: Sequence[int],
        params: Optional[Sequence] = None,
        file: Optional[int] = None
    ) -> int:
        return self.b.add_function(
            self.file if file is None else file,
            name,
            parameters=EXECUTE_PARAMS if params is None else params,
            body=body,
            return_type=RESULT_TYPE,
            attributes=["#[entry_point]"],
        )

    def function(
        self,
        name: str,
        body: Sequence[int],
        params: Optional[Sequence] = None,
        file: Optional[int] = None,
        return_type: str = RESULT_TYPE
    ) -> int:
        return self.b.add_function(
            self.file if file is None else file,
            name,
            parameters=HANDLER_PARAMS if params is None else params,
            body=body,
            return_type=return_type,
        )

    def dispatcher(self, *handlers: str, file: Optional[int] = None) -> int:
        """`match msg { .. => handler(deps, info), .. }` だけを持つexecute。"""
        arms = [
            self.b.call(handler, [self.b.path("deps"), self.b.path("info")])
            for handler in handlers
        ]
        dispatch = self.b.match(self.b.path("msg"), arms)
        return self.entry("execute", [dispatch], file=file)

    # ---- 確定 ----

    def build(self) -> SyntaxTree:
        return self.b.build()

    def context(self, scope: Optional[ScopeFilter] = None) -> RuleContext:
        return RuleContext(self.build(), scope or ScopeFilter())


@pytest.fixture
def contract() -> ContractBuilder:
    return ContractBuilder()


@pytest.fixture
def scope() -> ScopeFilter:
    return ScopeFilter()


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_loggingが追加したルートロガーのハンドラーをテスト後に外す。"""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if type(handler) in (logging.StreamHandler, logging.FileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)
