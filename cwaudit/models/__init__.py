"""解析で使うデータモデル（構文木・分類・指摘）。"""

from .finding import Finding, SourceLocation, Severity
from .classification import EntryKind, StorageOpKind, ENTRY_POINT_NAMES, STORAGE_METHODS
from .syntax import (
    FunctionDecl,
    Node,
    NodeKind,
    Parameter,
    SourceFile,
    Span,
    SyntaxTree,
    SyntaxTreeBuilder,
)

__all__ = [
    "Finding",
    "SourceLocation",
    "Severity",
    "EntryKind",
    "StorageOpKind",
    "ENTRY_POINT_NAMES",
    "STORAGE_METHODS",
    "FunctionDecl",
    "Node",
    "NodeKind",
    "Parameter",
    "SourceFile",
    "Span",
    "SyntaxTree",
    "SyntaxTreeBuilder",
]
