"""Logging setup for the BichoRP ledger.

``get_logger(name)`` configures the root logger on first use from LOG_LEVEL
and LOG_FILE. ``configure_logging()`` re-reads both variables, so the entry
point calls it again once a .env file has been loaded.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Optional


_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# handlers installed by this module; others (pytest, uvicorn) are left alone
_handlers: List[logging.Handler] = []
_configured = False


def configure_logging() -> None:
    """Apply LOG_LEVEL and LOG_FILE to the root logger, replacing earlier handlers."""
    global _configured

    level = getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    log_file = os.getenv('LOG_FILE', '')

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()

    root.setLevel(level)
    formatter = logging.Formatter(_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    _handlers.append(console)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding='utf-8')
            file_handler.setFormatter(formatter)
            _handlers.append(file_handler)
        except OSError:
            root.exception('Failed to create file log handler; continuing with console only')

    for handler in _handlers:
        handler.setLevel(level)
        root.addHandler(handler)
    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger, configuring the root logger on the first call."""
    if not _configured:
        configure_logging()
    return logging.getLogger(name)
