"""EntityClassifierのテスト。"""

import pytest

from cwaudit.analyzer.classifier import EntityClassifier
from cwaudit.models.classification import EntryKind, StorageOpKind
from cwaudit.models.syntax import SyntaxTreeBuilder


class TestEntryPoints:
    """エントリーポイント分類のテスト。"""

    @pytest.mark.parametrize("name,kind", [
        ("instantiate", EntryKind.INSTANTIATE),
        ("execute", EntryKind.EXECUTE),
        ("query", EntryKind.QUERY),
        ("migrate", EntryKind.MIGRATE),
        ("reply", EntryKind.REPLY),
        ("ibc_packet_receive", EntryKind.IBC_RECEIVE),
        ("ibc_packet_timeout", EntryKind.IBC_TIMEOUT),
    ])
    def test_reserved_name_with_attribute(self, contract, name, kind):
        """entry_point属性つきの予約名のテスト。"""
        fn_index = contract.entry(name, [contract.ok()], params=[("deps", "DepsMut")])
        tree = contract.build()
        assert EntityClassifier(tree).classify_entry_point(tree.function(fn_index)) == kind

    def test_cfg_attr_entry_point(self, contract):
        """cfg_attrで包まれたentry_point属性のテスト。"""
        fn_index = contract.b.add_function(
            contract.file, "migrate", [("deps", "DepsMut")],
            body=[contract.ok()],
            attributes=['#[cfg_attr(not(feature = "library"), entry_point)]'],
        )
        tree = contract.build()
        assert EntityClassifier(tree).classify_entry_point(tree.function(fn_index)) == EntryKind.MIGRATE

    def test_reserved_name_without_attribute_needs_two_params(self, contract):
        """属性なしの場合は引数2個以上で分類されることのテスト。"""
        with_params = contract.function("execute", [contract.ok()], params=[("deps", "DepsMut"), ("env", "Env")])
        without = contract.function("query", [contract.ok()], params=[("deps", "Deps")])
        tree = contract.build()
        classifier = EntityClassifier(tree)

        assert classifier.classify_entry_point(tree.function(with_params)) == EntryKind.EXECUTE
        assert classifier.classify_entry_point(tree.function(without)) is None

    @pytest.mark.parametrize("name", ["execute_mint", "try_execute", "Execute", "query_config"])
    def test_non_reserved_names(self, contract, name):
        """予約名と完全一致しない関数は分類されないことのテスト。"""
        fn_index = contract.entry(name, [contract.ok()])
        tree = contract.build()
        assert EntityClassifier(tree).classify_entry_point(tree.function(fn_index)) is None

    def test_classification_is_idempotent(self, contract):
        """同じ関数の再分類が同じ結果を返すことのテスト。"""
        fn_index = contract.entry("reply", [contract.ok()])
        tree = contract.build()
        classifier = EntityClassifier(tree)
        fn = tree.function(fn_index)

        assert classifier.classify_entry_point(fn) == classifier.classify_entry_point(fn)
        assert EntityClassifier(tree).classify_entry_point(fn) == EntryKind.REPLY

    def test_ibc_kinds(self):
        assert EntryKind.IBC_OPEN.is_ibc
        assert not EntryKind.REPLY.is_ibc


class TestStorageOperations:
    """ストレージ操作分類のテスト。"""

    @pytest.mark.parametrize("method,kind", [
        ("save", StorageOpKind.WRITE),
        ("update", StorageOpKind.WRITE),
        ("load", StorageOpKind.READ),
        ("may_load", StorageOpKind.READ),
        ("remove", StorageOpKind.DELETE),
    ])
    def test_method_names(self, method, kind):
        b = SyntaxTreeBuilder()
        call = b.method(b.path("CONFIG"), method)
        tree = b.build()
        assert EntityClassifier(tree).classify_storage_op(tree.node(call)) == kind

    def test_similar_names_are_not_storage(self):
        """部分一致やフリー関数は対象外であることのテスト。"""
        b = SyntaxTreeBuilder()
        saved = b.method(b.path("x"), "save_all")
        free = b.call("save")
        tree = b.build()
        classifier = EntityClassifier(tree)

        assert classifier.classify_storage_op(tree.node(saved)) is None
        assert classifier.classify_storage_op(tree.node(free)) is None

    def test_storage_ops_filter(self, contract):
        """種別を指定したストレージ操作の列挙のテスト。"""
        fn_index = contract.function("handler", [contract.load(), contract.save(), contract.remove()])
        tree = contract.build()
        classifier = EntityClassifier(tree)
        fn = tree.function(fn_index)

        assert [n.name for n in classifier.storage_ops(fn)] == ["load", "save", "remove"]
        assert [n.name for n in classifier.storage_ops(fn, StorageOpKind.WRITE)] == ["save"]
        assert classifier.performs_storage_op(fn, StorageOpKind.DELETE)


class TestStorageDeclarations:
    """ストレージ宣言分類のテスト。"""

    def test_top_level_declaration(self, contract):
        decl = contract.declaration(3, "Item::new", "config")
        tree = contract.build()
        assert EntityClassifier(tree).classify_storage_declaration(tree.node(decl)) == "config"

    def test_declaration_in_function_with_params(self, contract):
        """引数を持つ関数内の生成は宣言とみなさないことのテスト。"""
        call = contract.b.call("Map::new", [contract.b.string("balances")])
        contract.function("make", [call], params=[("namespace", "&str")])
        tree = contract.build()
        assert EntityClassifier(tree).classify_storage_declaration(tree.node(call)) is None

    def test_declaration_in_function_without_params(self, contract):
        call = contract.b.call("Map::new", [contract.b.string("balances")])
        contract.function("balances", [call], params=[], return_type="Map<&Addr, Uint128>")
        tree = contract.build()
        assert EntityClassifier(tree).classify_storage_declaration(tree.node(call)) == "balances"

    def test_non_literal_key(self, contract):
        b = contract.b
        call = b.call("Item::new", [b.path("CONFIG_KEY")])
        b.add_item(contract.file, call)
        tree = contract.build()
        assert EntityClassifier(tree).classify_storage_declaration(tree.node(call)) is None

    def test_other_constructor(self, contract):
        b = contract.b
        call = b.call("Item::from", [b.string("config")])
        b.add_item(contract.file, call)
        tree = contract.build()
        assert EntityClassifier(tree).classify_storage_declaration(tree.node(call)) is None


class TestSenderAccess:
    """呼び出し元アクセス分類のテスト。"""

    def test_info_sender(self, contract):
        sender = contract.sender()
        tree = contract.build()
        assert EntityClassifier(tree).classify_sender_access(tree.node(sender))

    def test_other_container(self):
        """コンテナ式に "info" を含まない場合のテスト。"""
        b = SyntaxTreeBuilder()
        field = b.field(b.path("packet"), "sender")
        tree = b.build()
        assert not EntityClassifier(tree).classify_sender_access(tree.node(field))

    def test_renamed_info_variable(self):
        """infoを含む変数名も呼び出し元アクセスとみなすことのテスト。"""
        b = SyntaxTreeBuilder()
        field = b.field(b.path("msg_info"), "sender")
        tree = b.build()
        assert EntityClassifier(tree).classify_sender_access(tree.node(field))

    def test_other_field(self, contract):
        b = contract.b
        funds = b.field(b.path("info"), "funds")
        tree = contract.build()
        assert not EntityClassifier(tree).classify_sender_access(tree.node(funds))


class TestDispatchMatch:
    """メッセージディスパッチ分類のテスト。"""

    def test_match_on_message_param(self, contract):
        fn_index = contract.dispatcher("execute_mint")
        tree = contract.build()
        classifier = EntityClassifier(tree)
        assert len(classifier.dispatch_matches(tree.function(fn_index))) == 1

    def test_renamed_message_param(self, contract):
        """最後の引数名が変えられている場合のテスト。"""
        b = contract.b
        dispatch = b.match(b.path("execute_msg"), [b.call("execute_mint")])
        params = [("deps", "DepsMut"), ("env", "Env"), ("info", "MessageInfo"), ("execute_msg", "ExecuteMsg")]
        fn_index = contract.entry("execute", [dispatch], params=params)
        tree = contract.build()
        assert EntityClassifier(tree).classify_dispatch_match(tree.node(dispatch), tree.function(fn_index))

    def test_match_on_other_value(self, contract):
        b = contract.b
        status_match = b.match(b.field(b.path("state"), "status"), [b.call("a"), b.call("c")])
        fn_index = contract.entry("execute", [status_match])
        tree = contract.build()
        classifier = EntityClassifier(tree)
        assert not classifier.classify_dispatch_match(tree.node(status_match), tree.function(fn_index))
