"""
Process-wide logging for the analysis pipeline.
Console gets concise INFO output; a timestamped file under logs/ captures DEBUG detail.
"""

import logging
import sys
import os
from datetime import datetime
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

PIPELINE_LOGGER_NAME = "AnalysisPipeline"

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s'

# Configured once per process
_logging_initialized = False
_main_logger = None
_log_file_path = None


def _resolve_level(level: str, fallback: int) -> int:
    return getattr(logging, str(level).upper(), fallback)


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    return handler


def setup_logging(console_level: str = None, file_level: str = None, log_file: str = None,
                  log_dir: str = "logs") -> logging.Logger:
    """Configure the root logger once; later calls return the existing pipeline logger"""
    global _logging_initialized, _main_logger, _log_file_path

    if _logging_initialized and _main_logger is not None:
        return _main_logger

    console_level = console_level or os.getenv('CONSOLE_LOG_LEVEL', 'INFO')
    file_level = file_level or os.getenv('FILE_LOG_LEVEL', 'DEBUG')

    if log_file is not None:
        _log_file_path = Path(log_file)
        _log_file_path.parent.mkdir(parents=True, exist_ok=True)
    elif _log_file_path is None:
        directory = Path(log_dir)
        directory.mkdir(exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        _log_file_path = directory / f"analysis_pipeline_{timestamp}.log"

    console_numeric = _resolve_level(console_level, logging.INFO)
    file_numeric = _resolve_level(file_level, logging.DEBUG)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(console_numeric, file_numeric))
    root_logger.handlers.clear()
    root_logger.addHandler(_console_handler(console_numeric))
    root_logger.addHandler(_file_handler(_log_file_path, file_numeric))

    _main_logger = logging.getLogger(PIPELINE_LOGGER_NAME)
    _logging_initialized = True

    _main_logger.info(f"Logging initialized - Console: {console_level.upper()}, File: {file_level.upper()}")
    _main_logger.debug(f"🐛 DEBUG log file: {_log_file_path}")

    return _main_logger


def get_logger(name: str = None) -> logging.Logger:
    """Logger for `name`, configuring logging on first use"""
    if not _logging_initialized:
        setup_logging()
    return logging.getLogger(name or PIPELINE_LOGGER_NAME)


def reset_logging():
    """Drop handlers and state (tests only)"""
    global _logging_initialized, _main_logger, _log_file_path

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()

    _logging_initialized = False
    _main_logger = None
    _log_file_path = None


def get_current_log_file() -> Optional[str]:
    return str(_log_file_path) if _log_file_path else None


def is_logging_initialized() -> bool:
    return _logging_initialized
