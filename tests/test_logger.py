import logging

from h2fetch.logger import BoundLogger, create_logger, logger_for_call


class ListLogger:
    def __init__(self) -> None:
        self.records: list[tuple[int, str]] = []

    def log(self, level: int, msg: str, *args) -> None:
        self.records.append((level, msg % args))


def test_level_filtering() -> None:
    sink = ListLogger()
    logger = BoundLogger(sink, level="info")
    logger.debug("hidden %s", 1)
    logger.info("shown %s", 2)
    assert sink.records == [(logging.INFO, "shown 2")]


def test_debug_flag_is_per_call() -> None:
    sink = ListLogger()
    shared = create_logger(logger=sink)
    verbose = logger_for_call(shared, debug=True)
    quiet = logger_for_call(shared, debug=False)
    verbose.debug("request headers")
    quiet.debug("not emitted")
    assert sink.records == [(logging.DEBUG, "request headers")]
    assert shared.level == "info"


def test_logging_failures_are_swallowed() -> None:
    class Broken:
        def log(self, *args, **kwargs):
            raise RuntimeError("sink down")

    BoundLogger(Broken()).error("still fine")


def test_duck_typed_logger_without_log_method() -> None:
    class PrintLikeLogger:
        def __init__(self) -> None:
            self.lines: list[str] = []

        def debug(self, msg: str, *args) -> None:
            self.lines.append("debug " + msg % args)

        def warn(self, msg: str, *args) -> None:
            self.lines.append("warn " + msg % args)

    sink = PrintLikeLogger()
    logger = logger_for_call(sink, debug=True).child("executor")
    logger.debug("state %s", "sending")
    logger.warn("timed out")
    logger.info("no info method")
    assert sink.lines == ["debug state sending", "warn timed out"]
