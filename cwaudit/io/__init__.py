"""レポート出力モジュール。"""

from .excel_writer import ExcelWriter
from .sarif_writer import SarifWriter

__all__ = ["ExcelWriter", "SarifWriter"]
