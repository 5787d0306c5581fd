import logging
import os

LOG_DIR = os.path.join(os.path.dirname(__file__), '..', 'logs')
LOG_DIR = os.path.abspath(LOG_DIR)

LOG_FILE = os.path.join(LOG_DIR, 'vinylrevive.log')

LOG_FORMAT = '%(asctime)s | %(levelname)s | %(name)s | %(message)s'

# App logger plus the engine package, so engine events land in the same file
LOGGER_NAMES = ('vinylrevive', 'revive_engine')


def setup_logging(log_file: str = LOG_FILE, level: int = logging.INFO) -> logging.Logger:
    """Attach file and console handlers once; later calls are no-ops."""
    logger = logging.getLogger(LOGGER_NAMES[0])
    if logger.handlers:
        return logger

    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    # File handler
    fh = logging.FileHandler(log_file)
    fh.setLevel(level)
    fh.setFormatter(formatter)

    # Stream handler (console)
    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(formatter)

    for name in LOGGER_NAMES:
        named = logging.getLogger(name)
        named.setLevel(level)
        named.addHandler(fh)
        named.addHandler(sh)

    return logger


# Convenience function
def get_logger():
    return setup_logging()
