"""Logging setup.

The TUI owns the terminal, so records go to a file and to the Textual
devtools console (``textual console``) instead of stderr.
"""

import logging

from textual.logging import TextualHandler

from lazykv.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings, level: str | None = None) -> None:
    """Attach the file and devtools handlers to the ``lazykv`` logger.

    *level* overrides ``settings.log_level`` (the ``--log-level`` option).
    """
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(settings.log_file)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger = logging.getLogger("lazykv")
    logger.setLevel(getattr(logging, (level or settings.log_level).upper()))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.addHandler(file_handler)
    logger.addHandler(TextualHandler())
    logger.propagate = False

    # Connection-pool chatter drowns out our own records at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
