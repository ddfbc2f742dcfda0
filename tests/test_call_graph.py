"""CallGraphResolverのテスト。"""

from cwaudit.analyzer.call_graph import CallGraphResolver
from cwaudit.analyzer.scope import ScopeFilter


class TestResolveStaticTarget:
    """静的な呼び出し先解決のテスト。"""

    def test_unique_free_function(self, contract):
        b = contract.b
        call = b.call("execute_mint", [b.path("deps")])
        contract.function("execute_mint", [contract.save()])
        tree = contract.build()

        target = CallGraphResolver(tree, ScopeFilter()).resolve_static_target(tree.node(call))
        assert target is not None
        assert target.name == "execute_mint"

    def test_module_relative_path(self, contract):
        """crate:: / super:: で始まるパスの解決のテスト。"""
        b = contract.b
        crate_call = b.call("crate::helpers::ensure_admin")
        super_call = b.call("super::ensure_admin")
        contract.function("ensure_admin", [contract.ok()])
        tree = contract.build()
        resolver = CallGraphResolver(tree, ScopeFilter())

        assert resolver.resolve_static_target(tree.node(crate_call)).name == "ensure_admin"
        assert resolver.resolve_static_target(tree.node(super_call)).name == "ensure_admin"

    def test_unresolvable_calls(self, contract):
        """メソッド・マクロ・型の関連関数・未定義関数は解決しないことのテスト。"""
        b = contract.b
        method = b.method(b.path("CONFIG"), "save")
        macro = b.call("save!")
        associated = b.call("Config::save")
        generic = b.call("<T as Trait>::save")
        unknown = b.call("not_defined_anywhere")
        contract.function("save", [contract.ok()])
        tree = contract.build()
        resolver = CallGraphResolver(tree, ScopeFilter())

        for call in (method, macro, associated, generic, unknown):
            assert resolver.resolve_static_target(tree.node(call)) is None

    def test_ambiguous_name(self, contract):
        """同名関数が複数ファイルにある場合は解決しないことのテスト。"""
        b = contract.b
        other_a = contract.add_file("src/a.rs")
        other_b = contract.add_file("src/b.rs")
        call = b.call("helper")
        contract.function("caller", [call])
        contract.function("helper", [contract.ok()], file=other_a)
        contract.function("helper", [contract.ok()], file=other_b)
        tree = contract.build()

        assert CallGraphResolver(tree, ScopeFilter()).resolve_static_target(tree.node(call)) is None

    def test_ambiguous_name_resolved_in_same_file(self, contract):
        """呼び出し元と同じファイルの関数が一意なら解決することのテスト。"""
        b = contract.b
        other = contract.add_file("src/other.rs")
        call = b.call("helper")
        contract.function("caller", [call])
        local = contract.function("helper", [contract.ok()])
        contract.function("helper", [contract.ok()], file=other)
        tree = contract.build()

        target = CallGraphResolver(tree, ScopeFilter()).resolve_static_target(tree.node(call))
        assert target is not None
        assert target.index == local

    def test_excluded_files_are_not_targets(self, contract):
        """除外ディレクトリの関数は解決先にならないことのテスト。"""
        b = contract.b
        vendored = contract.add_file("vendor/lib/src/lib.rs")
        call = b.call("helper")
        contract.function("caller", [call])
        contract.function("helper", [contract.ok()], file=vendored)
        tree = contract.build()

        assert CallGraphResolver(tree, ScopeFilter()).resolve_static_target(tree.node(call)) is None

    def test_declaration_without_body_is_not_target(self, contract):
        b = contract.b
        call = b.call("helper")
        contract.function("caller", [call])
        b.add_function(contract.file, "helper", [("deps", "Deps")])
        tree = contract.build()

        assert CallGraphResolver(tree, ScopeFilter()).resolve_static_target(tree.node(call)) is None


class TestCallees:
    """1ホップの呼び出し先列挙のテスト。"""

    def test_unique_in_order(self, contract):
        b = contract.b
        body = [b.call("b_helper"), b.call("a_helper"), b.call("b_helper")]
        caller = contract.function("caller", body)
        contract.function("a_helper", [contract.ok()])
        contract.function("b_helper", [contract.ok()])
        tree = contract.build()

        callees = CallGraphResolver(tree, ScopeFilter()).callees(tree.function(caller))
        assert [fn.name for fn in callees] == ["b_helper", "a_helper"]

    def test_recursion_is_not_a_callee(self, contract):
        b = contract.b
        fn_index = contract.function("walk", [b.call("walk")])
        tree = contract.build()

        assert CallGraphResolver(tree, ScopeFilter()).callees(tree.function(fn_index)) == []
