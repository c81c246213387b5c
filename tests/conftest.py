"""
Pytest configuration for Qt-based tests.

Provides proper cleanup of Qt objects between tests to prevent
crashes during test teardown.
"""

import logging
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtCore import QCoreApplication

from helpers import write_test_wav


@pytest.fixture(autouse=True)
def cleanup_qt_objects(qtbot, request):
    """
    Auto-cleanup fixture that runs after each test to ensure Qt objects are
    properly destroyed before the next test starts.
    """
    yield

    app = QCoreApplication.instance()
    if app:
        app.processEvents()


@pytest.fixture
def propagate_logs():
    """Let caplog see records from the non-propagating app logger."""
    root = logging.getLogger("scribeflow")
    previous = root.propagate
    root.propagate = True
    yield
    root.propagate = previous


@pytest.fixture
def wav_path(tmp_path):
    return write_test_wav(tmp_path / "meeting.wav")
