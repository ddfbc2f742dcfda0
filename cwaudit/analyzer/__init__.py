"""構文木に対する分類・呼び出し解決・認可判定モジュール。"""

from .scope import FileScope, ScopeFilter
from .classifier import EntityClassifier
from .call_graph import CallGraphResolver
from .authorization import AuthorizationEvaluator, DEFAULT_STRATEGIES

__all__ = [
    "FileScope",
    "ScopeFilter",
    "EntityClassifier",
    "CallGraphResolver",
    "AuthorizationEvaluator",
    "DEFAULT_STRATEGIES",
]
