"""アクセス制御ルール（execute/migrateの認可漏れ、無防備なディスパッチ）。"""

from typing import List, Set

from ..models.classification import EntryKind, StorageOpKind
from ..models.finding import Finding, Severity
from ..models.syntax import FunctionDecl
from .base import Rule, RuleContext, RuleInfo, calls_in


def _is_query_only(ctx: RuleContext, fn: FunctionDecl) -> bool:
    if ctx.classifier.classify_entry_point(fn) == EntryKind.QUERY:
        return True
    return fn.name.startswith("query")


class MissingExecuteAuthorization(Rule):
    """executeハンドラ（またはその直接の呼び出し先）が認可なしにストレージを書き換える。"""

    info = RuleInfo(
        rule_id="missing-execute-authorization",
        title="Missing execute authorization",
        severity=Severity.ERROR,
        cwe="CWE-862",
        description=(
            "An execute handler writes contract storage without any "
            "recognizable check on the message sender."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        include_tests = not self.skip_test_files
        handlers = ctx.entry_points(include_tests, EntryKind.EXECUTE)
        auth = ctx.authorization

        findings = []
        for fn in ctx.with_callees(handlers, include_tests):
            if _is_query_only(ctx, fn):
                continue
            if not ctx.classifier.performs_storage_op(fn, StorageOpKind.WRITE):
                continue
            if auth.is_self_serve_handler(fn):
                continue
            if auth.has_authorization_check_transitive(fn):
                continue
            findings.append(self.finding(
                ctx, fn,
                f"Execute handler `{fn.name}` writes storage without an authorization check",
                function=fn,
            ))
        return findings


class MissingMigrateAuthorization(Rule):
    """migrateハンドラに認可チェックがない。"""

    info = RuleInfo(
        rule_id="missing-migrate-authorization",
        title="Missing migrate authorization",
        severity=Severity.ERROR,
        cwe="CWE-862",
        description="A migrate entry point performs no authorization check.",
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        include_tests = not self.skip_test_files
        return [
            self.finding(
                ctx, fn,
                f"Migrate handler `{fn.name}` has no authorization check",
                function=fn,
            )
            for fn in ctx.entry_points(include_tests, EntryKind.MIGRATE)
            if not ctx.authorization.has_authorization_check(fn)
        ]


class UnprotectedExecuteDispatch(Rule):
    """ディスパッチのmatchアームが、認可のない書き込みハンドラへ直接振り分けている。"""

    info = RuleInfo(
        rule_id="unprotected-execute-dispatch",
        title="Unprotected execute dispatch",
        severity=Severity.ERROR,
        cwe="CWE-862",
        description=(
            "A message variant is dispatched to a state-changing handler and "
            "neither the dispatcher nor the handler checks the sender."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        include_tests = not self.skip_test_files
        auth = ctx.authorization
        tree = ctx.tree

        findings = []
        for handler in ctx.entry_points(include_tests, EntryKind.EXECUTE):
            if auth.has_authorization_check(handler):
                continue

            seen: Set[int] = set()
            for match in ctx.classifier.dispatch_matches(handler):
                for arm in match.arms:
                    for call in calls_in(ctx, tree.node(arm)):
                        if call.index in seen:
                            continue
                        seen.add(call.index)

                        target = ctx.resolver.resolve_static_target(call)
                        if target is None:
                            continue
                        if not ctx.classifier.performs_storage_op(target, StorageOpKind.WRITE):
                            continue
                        if auth.is_self_serve_handler(target):
                            continue
                        if auth.has_authorization_check(target):
                            continue
                        findings.append(self.finding(
                            ctx, call,
                            f"`{handler.name}` dispatches to `{target.name}`, which writes "
                            "storage, without an authorization check in either function",
                            function=handler,
                            related=[target],
                        ))
        return findings
