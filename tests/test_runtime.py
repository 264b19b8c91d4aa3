import logging

import pytest

from subway_ridership.utils import runtime


@pytest.fixture
def package_logger():
    logger = logging.getLogger(runtime.PACKAGE_LOGGER)
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def test_find_project_root_walks_up(tmp_path) -> None:
    (tmp_path / "pyproject.toml").write_text("[project]\n")
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    assert runtime.find_project_root(nested) == tmp_path


def test_find_project_root_falls_back_to_start(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(runtime, "ROOT_MARKERS", ("no-such-marker",))
    assert runtime.find_project_root(tmp_path) == tmp_path.resolve()


def test_module_loggers_write_to_log_file(tmp_path, package_logger) -> None:
    log_path = runtime.configure_logging(tmp_path, "stage_turnstile_data")
    logging.getLogger("subway_ridership.normalize_counters").info("hello turnstiles")
    for handler in package_logger.handlers:
        handler.flush()

    assert log_path == tmp_path / "logs" / "stage_turnstile_data.log"
    assert "subway_ridership.normalize_counters - INFO - hello turnstiles" in log_path.read_text()


def test_timestamped_log_name(tmp_path, package_logger) -> None:
    log_path = runtime.configure_logging(tmp_path, "run_pipeline", timestamped=True)
    assert log_path.parent == tmp_path / "logs"
    assert log_path.name.startswith("run_pipeline_")
    assert log_path.suffix == ".log"


def test_reconfiguring_replaces_handlers(tmp_path, package_logger) -> None:
    first = runtime.configure_logging(tmp_path, "first")
    second = runtime.configure_logging(tmp_path, "second")
    package_logger.info("only in second")
    for handler in package_logger.handlers:
        handler.flush()

    assert len(package_logger.handlers) == 2
    assert "only in second" not in first.read_text()
    assert "only in second" in second.read_text()
