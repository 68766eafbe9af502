import logging
from logging.handlers import RotatingFileHandler

import main
from logger import LOGGER_NAME, setup_logger


def _file_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def test_rotation_settings_come_from_config(tmp_path):
    config = {"logging": {"level": "debug", "file": str(tmp_path / "logs" / "app.log"),
                          "max_size": 4096, "backup_count": 7}}

    logger = setup_logger(config)

    handler, = _file_handlers(logger)
    assert handler.maxBytes == 4096
    assert handler.backupCount == 7
    assert logger.level == logging.DEBUG
    assert (tmp_path / "logs").is_dir()
    setup_logger({"logging": {"file": None}})


def test_console_only_when_no_file():
    logger = setup_logger({"logging": {"file": None, "level": "WARNING"}})

    assert _file_handlers(logger) == []
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING
    assert logger is logging.getLogger(LOGGER_NAME)


def test_pharmacy_config_sets_rotation(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"logging": {"file": "%s"}}' % (tmp_path / "app.log").as_posix())

    config = main.load_config(str(path))

    assert config["logging"]["max_size"] == main.DEFAULT_CONFIG["logging"]["max_size"]
    assert config["logging"]["backup_count"] == main.DEFAULT_CONFIG["logging"]["backup_count"]
    handler, = _file_handlers(setup_logger(config))
    assert handler.maxBytes == main.DEFAULT_CONFIG["logging"]["max_size"]
    setup_logger({"logging": {"file": None}})
