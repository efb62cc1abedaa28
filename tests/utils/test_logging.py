import logging

from personnel.utils.logging import (
    configure_logging,
    get_correlation_id,
    get_logger,
    redact_params,
    set_correlation_id,
    time_call,
)


def test_correlation_id_round_trip():
    token = set_correlation_id("test-token")
    assert token == "test-token"
    assert get_correlation_id() == "test-token"


def test_generated_correlation_ids_differ():
    assert set_correlation_id() != set_correlation_id()


def test_loggers_live_under_package_root():
    assert get_logger("persistence.session").name == "personnel.persistence.session"


def test_configure_logging_sets_level_without_duplicate_handlers():
    root = logging.getLogger("personnel")
    configure_logging("warning")
    handlers = list(root.handlers)
    configure_logging(logging.DEBUG)
    assert root.level == logging.DEBUG
    assert root.handlers == handlers
    configure_logging("INFO")


def test_redact_params_masks_secrets():
    assert redact_params(["Joan", "my-password-1", 3, None]) == ["Joan", "***", 3, None]
    assert redact_params(None) == []


def test_time_call_logs_duration(caplog):
    logger = get_logger("tests.logging")
    caplog.set_level(logging.DEBUG, logger=logger.name)
    with time_call("unit-test", logger, threshold_ms=1000):
        pass
    records = [record for record in caplog.records if record.name == logger.name]
    assert any("unit-test took" in record.message for record in records)
    assert all(record.levelno == logging.DEBUG for record in records)


def test_slow_call_warns_with_sql(caplog):
    logger = get_logger("tests.logging")
    caplog.set_level(logging.DEBUG, logger=logger.name)
    with time_call("slow", logger, sql="SELECT 1", threshold_ms=0):
        pass
    warnings = [record for record in caplog.records if record.levelno == logging.WARNING]
    assert warnings and warnings[-1].message.endswith("SELECT 1")
