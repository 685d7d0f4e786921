import logging
from pathlib import Path

LOG_DIR = Path(__file__).parent.parent / "logs"
LOG_FILE = LOG_DIR / "transmem.log"

LOG_MODES = ("off", "info", "debug")

# Current log mode, changed through set_log_mode()
_log_mode = "off"

_log_format = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def _levels_for(log_mode: str):
    """Return (logger_level, console_level) for a log mode."""
    if log_mode == 'debug':
        return logging.DEBUG, logging.DEBUG
    if log_mode == 'off':
        # Higher than CRITICAL disables everything
        return logging.CRITICAL + 1, logging.CRITICAL + 1
    return logging.INFO, logging.INFO


def _apply_mode(logger: logging.Logger, log_mode: str):
    """Bring the level and handlers of a logger in line with the log mode."""
    logger_level, console_level = _levels_for(log_mode)
    logger.setLevel(logger_level)

    has_file_handler = any(isinstance(h, logging.FileHandler) for h in logger.handlers)
    has_console_handler = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )

    if log_mode != 'off' and not has_file_handler:
        LOG_DIR.mkdir(exist_ok=True)
        f_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
        f_handler.setLevel(logging.DEBUG)
        f_handler.setFormatter(_log_format)
        logger.addHandler(f_handler)
    elif log_mode == 'off' and has_file_handler:
        for handler in [h for h in logger.handlers if isinstance(h, logging.FileHandler)]:
            handler.close()
            logger.removeHandler(handler)

    if log_mode != 'off' and not has_console_handler:
        c_handler = logging.StreamHandler()
        c_handler.setFormatter(_log_format)
        logger.addHandler(c_handler)

    for handler in logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(console_level)


def set_log_mode(log_mode: str):
    """Switch the log mode and update every logger created by get_logger()."""
    global _log_mode
    if log_mode not in LOG_MODES:
        log_mode = 'info'
    _log_mode = log_mode

    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        if not logger_name.startswith('transmem'):
            continue
        logger = logging.getLogger(logger_name)
        if getattr(logger, '_transmem_managed', False):
            _apply_mode(logger, log_mode)


def get_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if not getattr(logger, '_transmem_managed', False):
        logger._transmem_managed = True
    _apply_mode(logger, _log_mode)
    return logger
