"""コントラクト間メッセージのルール（IBCのCEI違反、reply処理）。"""

from typing import List

from ..models.classification import EntryKind, StorageOpKind
from ..models.finding import Finding, Severity
from ..models.syntax import NodeKind
from .base import Rule, RuleContext, RuleInfo

IBC_ENTRY_KINDS = tuple(kind for kind in EntryKind if kind.is_ibc)

MESSAGE_BUILDERS = frozenset({"add_message", "add_messages", "add_submessage", "add_submessages"})

REPLY_CALLBACKS = frozenset({"reply_on_success", "reply_on_error", "reply_always"})


class IbcCeiViolation(Rule):
    """IBCエントリーポイントでの状態変更と外部メッセージ送出の混在。"""

    info = RuleInfo(
        rule_id="ibc-cei-violation",
        title="IBC checks-effects-interactions violation",
        severity=Severity.WARNING,
        cwe="CWE-841",
        description=(
            "An IBC callback mutates storage and also dispatches outgoing "
            "messages, which opens the handler to reentrant exploitation."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        tree = ctx.tree
        findings = []
        for fn in ctx.entry_points(not self.skip_test_files, *IBC_ENTRY_KINDS):
            if not ctx.classifier.performs_storage_op(fn, StorageOpKind.WRITE, StorageOpKind.DELETE):
                continue
            sends = [
                node for node in tree.function_nodes(fn)
                if node.kind == NodeKind.METHOD_CALL and node.name in MESSAGE_BUILDERS
            ]
            if not sends:
                continue
            findings.append(self.finding(
                ctx, fn,
                f"IBC handler `{fn.name}` mutates storage and dispatches "
                f"{len(sends)} outgoing message call(s)",
                function=fn,
                related=sends,
            ))
        return findings


class SubmsgWithoutReplyHandler(Rule):
    """reply付きのSubMsgを作るが、replyエントリーポイントがどこにもない。"""

    info = RuleInfo(
        rule_id="submsg-without-reply-handler",
        title="Submessage without reply handler",
        severity=Severity.WARNING,
        cwe="CWE-754",
        description=(
            "A submessage requests a reply callback but the contract defines no "
            "reply entry point, so every reply fails."
        ),
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        include_tests = not self.skip_test_files
        # 全体事実（replyエントリーポイントの有無）を先に確定させる
        if ctx.entry_points(include_tests, EntryKind.REPLY):
            return []

        findings = []
        for fn in ctx.functions(include_tests):
            for node in ctx.tree.function_nodes(fn):
                if not node.is_call:
                    continue
                callback = (node.name or "").split("::")[-1]
                if callback not in REPLY_CALLBACKS:
                    continue
                findings.append(self.finding(
                    ctx, node,
                    f"`{callback}` requests a reply but no reply entry point exists",
                    function=fn,
                ))
        return findings


class ReplyHandlerIgnoringErrors(Rule):
    """replyハンドラがサブメッセージの結果を参照していない。"""

    info = RuleInfo(
        rule_id="reply-handler-ignoring-errors",
        title="Reply handler ignoring errors",
        severity=Severity.WARNING,
        cwe="CWE-252",
        description="A reply entry point never inspects `msg.result` nor matches on anything.",
    )

    def check(self, ctx: RuleContext) -> List[Finding]:
        tree = ctx.tree
        findings = []
        for fn in ctx.entry_points(not self.skip_test_files, EntryKind.REPLY):
            inspects_result = any(
                (node.kind == NodeKind.FIELD_ACCESS and node.name == "result")
                or node.kind == NodeKind.MATCH
                for node in tree.function_nodes(fn)
            )
            if inspects_result:
                continue
            findings.append(self.finding(
                ctx, fn,
                f"Reply handler `{fn.name}` ignores the submessage result",
                function=fn,
            ))
        return findings
