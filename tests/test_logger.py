import re
import threading

import pytest

from resgate.logger import MemLogger, StdLogger

MEM_LINE = re.compile(r"^\d{2}:\d{2}:\d{2}\.\d{6} \[(INF|ERR|DBG|TRC)\] (.*)$")
STD_LINE = re.compile(
    r"^\d{4}/\d{2}/\d{2} \d{2}:\d{2}:\d{2}\.\d{6} \[(INF|ERR|DBG|TRC)\] (.*)$"
)


@pytest.mark.parametrize(
    "method,tag",
    [("log", "INF"), ("error", "ERR"), ("debug", "DBG"), ("trace", "TRC")],
)
def test_mem_logger_tags(method, tag):
    logger = MemLogger(True, True)
    getattr(logger, method)("hello")
    text = str(logger)
    assert text.endswith("\n")
    match = MEM_LINE.match(text.rstrip("\n"))
    assert match is not None
    assert match.group(1) == tag
    assert match.group(2) == "hello"


def test_mem_logger_keeps_order():
    logger = MemLogger(False, False)
    logger.log("first")
    logger.error("second")
    lines = str(logger).splitlines()
    assert [MEM_LINE.match(line).group(2) for line in lines] == ["first", "second"]


def test_mem_logger_no_double_newline():
    logger = MemLogger(False, False)
    logger.log("line\n")
    assert str(logger).count("\n") == 1


def test_mem_logger_empty_initially():
    assert str(MemLogger(False, False)) == ""


@pytest.mark.parametrize("debug,trace", [(True, False), (False, True)])
def test_flags(debug, trace):
    mem = MemLogger(debug, trace)
    std = StdLogger(debug, trace)
    assert (mem.is_debug, mem.is_trace) == (debug, trace)
    assert (std.is_debug, std.is_trace) == (debug, trace)


def test_mem_logger_threads():
    logger = MemLogger(False, False)

    def worker():
        for _ in range(50):
            logger.log("x")

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    lines = str(logger).splitlines()
    assert len(lines) == 200
    assert all(MEM_LINE.match(line) for line in lines)


@pytest.mark.parametrize(
    "method,tag",
    [("log", "INF"), ("error", "ERR"), ("debug", "DBG"), ("trace", "TRC")],
)
def test_std_logger_writes_stderr(capsys, method, tag):
    logger = StdLogger(False, False)
    getattr(logger, method)("message")
    captured = capsys.readouterr()
    assert captured.out == ""
    match = STD_LINE.match(captured.err.rstrip("\n"))
    assert match is not None
    assert match.group(1) == tag
    assert match.group(2) == "message"