"""tree-sitterを使用したRustソースコード解析モジュール。"""

from .rust_frontend import RustFrontend, RustParseError

__all__ = ["RustFrontend", "RustParseError"]
