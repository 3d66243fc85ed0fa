import logging
import sys
from pathlib import Path

from automation_engine.core.config import settings


def setup_logging() -> logging.Logger:
    """Setup application logging"""

    logger = logging.getLogger("automation_engine")
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # Repeated startups (tests, reloads) must not stack handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(log_dir / "application.log")

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler.setFormatter(formatter)
    file_handler.setFormatter(formatter)

    logger.addHandler(console_handler)
    logger.addHandler(file_handler)

    return logger
