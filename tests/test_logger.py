import logging

from logger import NOISY_LOGGERS, quiet_library_loggers, setup_logger


def test_setup_is_idempotent():
    first = setup_logger("bridge.tests.idempotent")
    second = setup_logger("bridge.tests.idempotent")

    assert first is second
    assert len(first.handlers) == 1
    assert first.propagate is False


def test_console_line_is_tagged_with_component(capsys):
    log = setup_logger("bridge.tests.session_supervisor", level=logging.DEBUG)
    log.info("[SESSION] Connecting")

    out = capsys.readouterr().out
    assert "INFO - [session_supervisor] [SESSION] Connecting" in out


def test_loggers_share_one_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "bridge.log"
    a = setup_logger("bridge.tests.file_a", str(log_file), level=logging.DEBUG)
    b = setup_logger("bridge.tests.file_b", str(log_file))

    assert a.handlers[1] is b.handlers[1]

    a.debug("debug detail")
    b.warning("kicked")
    for handler in a.handlers:
        handler.flush()

    text = log_file.read_text(encoding="utf-8")
    assert "bridge.tests.file_a - DEBUG - debug detail" in text
    assert "bridge.tests.file_b - WARNING - kicked" in text


def test_quiet_library_loggers():
    quiet_library_loggers(logging.ERROR)
    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.ERROR
    quiet_library_loggers()
    assert logging.getLogger("discord.http").level == logging.WARNING
