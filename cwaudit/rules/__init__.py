"""CosmWasmコントラクト向けの検出ルール。"""

from typing import Dict, List, Type

from .base import Rule, RuleContext, RuleInfo
from .access_control import (
    MissingExecuteAuthorization,
    MissingMigrateAuthorization,
    UnprotectedExecuteDispatch,
)
from .data_safety import (
    MissingAddressValidation,
    StorageKeyCollision,
    UncheckedArithmetic,
    UncheckedStorageUnwrap,
)
from .cross_contract import (
    IbcCeiViolation,
    ReplyHandlerIgnoringErrors,
    SubmsgWithoutReplyHandler,
)

ALL_RULES: List[Type[Rule]] = [
    MissingExecuteAuthorization,
    MissingMigrateAuthorization,
    UnprotectedExecuteDispatch,
    UncheckedArithmetic,
    UncheckedStorageUnwrap,
    MissingAddressValidation,
    StorageKeyCollision,
    IbcCeiViolation,
    SubmsgWithoutReplyHandler,
    ReplyHandlerIgnoringErrors,
]

RULES_BY_ID: Dict[str, Type[Rule]] = {cls.info.rule_id: cls for cls in ALL_RULES}


def default_rules() -> List[Rule]:
    """全ルールのインスタンスを定義順に返す。"""
    return [cls() for cls in ALL_RULES]


def get_rule(rule_id: str) -> Rule:
    """ルールIDからルールを生成する。

    Raises:
        KeyError: 未知のルールIDの場合
    """
    return RULES_BY_ID[rule_id]()


__all__ = [
    "Rule",
    "RuleContext",
    "RuleInfo",
    "ALL_RULES",
    "RULES_BY_ID",
    "default_rules",
    "get_rule",
    "MissingExecuteAuthorization",
    "MissingMigrateAuthorization",
    "UnprotectedExecuteDispatch",
    "UncheckedArithmetic",
    "UncheckedStorageUnwrap",
    "MissingAddressValidation",
    "StorageKeyCollision",
    "IbcCeiViolation",
    "SubmsgWithoutReplyHandler",
    "ReplyHandlerIgnoringErrors",
]
