"""指摘一覧のExcel出力モジュール。"""

from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence
from pathlib import Path
import logging

from openpyxl import Workbook
from openpyxl.styles import PatternFill, Font, Alignment, Border, Side

from ..models.finding import Finding, Severity

logger = logging.getLogger(__name__)

THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin")
)


def _fill(color: str) -> PatternFill:
    return PatternFill(start_color=color, end_color=color, fill_type="solid")


class ExcelWriter:
    """指摘をExcelファイルに書き込む。"""

    # 重大度ごとの色（RGB hex、#なし）
    SEVERITY_COLORS: Dict[Severity, str] = {
        Severity.ERROR: "FFC7CE",    # 赤 - 修正必要
        Severity.WARNING: "FFEB9C",  # 黄 - レビュー必要
    }

    # 列ヘッダーと列幅
    COLUMNS = [
        ("No.", 6),
        ("重大度", 10),
        ("ルールID", 32),
        ("CWE", 10),
        ("ファイル", 40),
        ("行", 8),
        ("関数", 24),
        ("メッセージ", 80),
        ("関連位置", 30),
    ]

    def __init__(self, output_file: str, sheet_name: str = "Findings"):
        """Excelライターを初期化する。

        Args:
            output_file: 出力Excelファイルのパス
            sheet_name: 指摘一覧のシート名
        """
        self.output_file = Path(output_file)
        self.sheet_name = sheet_name

    def write(
        self,
        findings: Sequence[Finding],
        rule_counts: Optional[Dict[str, int]] = None
    ) -> None:
        """指摘一覧とサマリーシートを書き込む。

        Args:
            findings: 並べ替え済みの指摘
            rule_counts: ルールIDごとの件数（0件のルールも含めたい場合に指定）
        """
        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_name

        self._write_headers(ws)
        for row_num, finding in enumerate(findings, start=2):
            self._write_finding_row(ws, row_num, row_num - 1, finding)

        for i, (_, width) in enumerate(self.COLUMNS, 1):
            ws.column_dimensions[ws.cell(row=1, column=i).column_letter].width = width
        ws.freeze_panes = "A2"

        self._write_summary(wb, findings, rule_counts)

        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        wb.save(self.output_file)
        logger.info(f"Findings written to {self.output_file}")

    def _write_headers(self, ws) -> None:
        white_font = Font(bold=True, color="FFFFFF")
        for i, (header, _) in enumerate(self.COLUMNS, 1):
            cell = ws.cell(row=1, column=i)
            cell.value = header
            cell.font = white_font
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.fill = _fill("4472C4")
            cell.border = THIN_BORDER

    def _write_finding_row(self, ws, row_num: int, number: int, finding: Finding) -> None:
        """1行分の指摘を書き込む。

        Args:
            ws: ワークシートオブジェクト
            row_num: 書き込む行番号
            number: 通し番号
            finding: 書き込む指摘
        """
        related = ", ".join(str(loc) for loc in finding.related_locations)
        values = [
            number,
            finding.severity.value,
            finding.rule_id,
            finding.cwe or "",
            finding.location.file_path,
            finding.location.start_line,
            finding.function or "",
            finding.message,
            related,
        ]
        for col, value in enumerate(values, 1):
            cell = ws.cell(row=row_num, column=col)
            cell.value = value
            cell.border = THIN_BORDER
            cell.alignment = Alignment(wrap_text=(col == 8), vertical="top")

        severity_cell = ws.cell(row=row_num, column=2)
        severity_cell.fill = _fill(self.SEVERITY_COLORS[finding.severity])
        severity_cell.alignment = Alignment(horizontal="center", vertical="top")

    def _write_summary(
        self,
        wb: Workbook,
        findings: Sequence[Finding],
        rule_counts: Optional[Dict[str, int]]
    ) -> None:
        """ルール別件数のサマリーシートを追加する。"""
        ws = wb.create_sheet("Summary")

        ws["A1"] = "解析結果サマリー"
        ws["A1"].font = Font(bold=True, size=14)
        ws.merge_cells("A1:C1")

        ws["A2"] = f"生成日時: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
        ws.merge_cells("A2:C2")

        for i, header in enumerate(["ルールID", "重大度", "件数"], 1):
            cell = ws.cell(row=4, column=i)
            cell.value = header
            cell.font = Font(bold=True)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")

        counts = Counter(f.rule_id for f in findings)
        severities = {f.rule_id: f.severity for f in findings}
        rows: List[str] = sorted(set(rule_counts or {}) | set(counts))

        row = 5
        for rule_id in rows:
            severity = severities.get(rule_id)
            ws.cell(row=row, column=1).value = rule_id
            severity_cell = ws.cell(row=row, column=2)
            severity_cell.value = severity.value if severity else "-"
            if severity is not None:
                severity_cell.fill = _fill(self.SEVERITY_COLORS[severity])
            count_cell = ws.cell(row=row, column=3)
            count_cell.value = counts.get(rule_id, 0)
            count_cell.alignment = Alignment(horizontal="right")
            for col in range(1, 4):
                ws.cell(row=row, column=col).border = THIN_BORDER
            row += 1

        total_label = ws.cell(row=row, column=1)
        total_label.value = "合計"
        total_label.font = Font(bold=True)
        total_label.border = THIN_BORDER
        ws.cell(row=row, column=2).border = THIN_BORDER
        total_count = ws.cell(row=row, column=3)
        total_count.value = len(findings)
        total_count.font = Font(bold=True)
        total_count.alignment = Alignment(horizontal="right")
        total_count.border = THIN_BORDER

        ws.column_dimensions["A"].width = 34
        ws.column_dimensions["B"].width = 10
        ws.column_dimensions["C"].width = 10
