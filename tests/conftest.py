"""Shared pytest fixtures for actionpin tests."""

import logging

import pytest
import structlog


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo any setup_logging() call made by a test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)
