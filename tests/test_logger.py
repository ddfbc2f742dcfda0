"""ロギング設定のテスト。"""

import io
import logging

from cwaudit.utils.logger import DEBUG_FORMAT, ProgressLogger, setup_logging


class TestSetupLogging:
    """setup_loggingのテスト。"""

    def test_stream_and_level(self):
        stream = io.StringIO()
        root = setup_logging("warning", stream=stream)

        assert root.level == logging.WARNING
        logging.getLogger("cwaudit.test").info("hidden")
        logging.getLogger("cwaudit.test").warning("shown")
        assert "hidden" not in stream.getvalue()
        assert "WARNING - shown" in stream.getvalue()

    def test_unknown_level_falls_back_to_info(self):
        root = setup_logging("chatty", stream=io.StringIO())
        assert root.level == logging.INFO

    def test_debug_format_includes_thread(self):
        root = setup_logging("DEBUG", stream=io.StringIO())
        assert root.handlers[0].formatter._fmt == DEBUG_FORMAT

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "logs" / "cwaudit.log"
        root = setup_logging("INFO", log_file=str(log_file), stream=io.StringIO())
        assert len(root.handlers) == 2

        logging.getLogger("cwaudit.test").info("to file")
        for handler in root.handlers:
            handler.flush()
        assert "to file" in log_file.read_text(encoding="utf-8")

    def test_repeated_setup_replaces_handlers(self):
        setup_logging(stream=io.StringIO())
        root = setup_logging(stream=io.StringIO())
        assert len(root.handlers) == 1


class TestProgressLogger:
    """ProgressLoggerのテスト。"""

    def test_interval_and_last_file(self, caplog):
        logger = logging.getLogger("cwaudit.progress")
        progress = ProgressLogger(5, logger, log_interval=2)
        with caplog.at_level(logging.INFO, logger="cwaudit.progress"):
            for i in range(5):
                progress.update(f"src/f{i}.rs")

        messages = [r.getMessage() for r in caplog.records]
        assert messages == [
            "Parsed 2/5 files (40.0%) - src/f1.rs",
            "Parsed 4/5 files (80.0%) - src/f3.rs",
            "Parsed 5/5 files (100.0%) - src/f4.rs",
        ]

    def test_complete_reports_skipped(self, caplog):
        logger = logging.getLogger("cwaudit.progress")
        progress = ProgressLogger(2, logger)
        progress.update("src/a.rs")
        progress.update("src/b.rs", ok=False)
        with caplog.at_level(logging.INFO, logger="cwaudit.progress"):
            progress.complete()

        assert progress.failed == 1
        assert caplog.records[-1].getMessage() == "Parsing complete: 2 files (1 skipped)"

    def test_zero_total(self, caplog):
        progress = ProgressLogger(0, logging.getLogger("cwaudit.progress"), log_interval=0)
        with caplog.at_level(logging.INFO, logger="cwaudit.progress"):
            progress.update()
        assert progress.log_interval == 1
        assert caplog.records == []
