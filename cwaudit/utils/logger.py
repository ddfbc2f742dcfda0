"""ロギング設定モジュール。"""

from pathlib import Path
from typing import List, Optional, TextIO
import logging
import sys

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
# ルールはワーカースレッドで動くので、DEBUG時はスレッド名も出す
DEBUG_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> logging.Logger:
    """ルートロガーにコンソール（と任意でファイル）のハンドラーを設定する。

    標準出力は指摘レポートに使うため、コンソールへのログは標準エラーに出す。
    呼び出すたびに既存のハンドラーは置き換えられる。

    Args:
        level: ログレベル名（DEBUG, INFO, WARNING, ERROR, CRITICAL）
        log_file: ログファイルへのパス（省略可）
        format_string: カスタムフォーマット文字列（省略時はレベルに応じて選択）
        stream: コンソールハンドラーの出力先（省略時は標準エラー）

    Returns:
        ルートロガー
    """
    log_level = logging.getLevelName(str(level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if format_string is None:
        format_string = DEBUG_FORMAT if log_level <= logging.DEBUG else DEFAULT_FORMAT
    formatter = logging.Formatter(format_string)

    handlers: List[logging.Handler] = [logging.StreamHandler(stream or sys.stderr)]
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)
        old.close()
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    return root_logger


class ProgressLogger:
    """ソースファイル解析の進捗をログに出す。

    `log_interval` 件ごとと最後の1件で進捗率を出力し、読めなかったファイルの
    件数も数える。
    """

    def __init__(
        self,
        total: int,
        logger: Optional[logging.Logger] = None,
        log_interval: int = 10
    ):
        self.total = total
        self.current = 0
        self.failed = 0
        self.logger = logger or logging.getLogger(__name__)
        self.log_interval = max(1, log_interval)

    def update(self, path: Optional[str] = None, ok: bool = True) -> None:
        """1ファイル分進める。

        Args:
            path: 処理したファイルのパス（ログに含める）
            ok: 読み込みに成功したか
        """
        self.current += 1
        if not ok:
            self.failed += 1
        if self.total <= 0:
            return

        if self.current % self.log_interval == 0 or self.current == self.total:
            msg = f"Parsed {self.current}/{self.total} files ({self.current / self.total:.1%})"
            if path:
                msg += f" - {path}"
            self.logger.info(msg)

    def complete(self) -> None:
        """解析完了をログに出す。"""
        if self.failed:
            self.logger.info(f"Parsing complete: {self.current} files ({self.failed} skipped)")
        else:
            self.logger.info(f"Parsing complete: {self.current} files")
