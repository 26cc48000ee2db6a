"""Repository-wide pytest configuration.

Pins the import path to the repository root and keeps the operator
environment from leaking into tests that build settings.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from layer_operator.config import ENV_FIELDS, SETTINGS_ENV  # noqa: E402
from layer_operator.logging_utils import LOGGER_NAME  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_operator_environment(monkeypatch, tmp_path):
    """Clear settings variables and undo logging changes made by the CLI.

    Tests run from a scratch directory so a developer's ``.env`` is never discovered.
    """

    monkeypatch.chdir(tmp_path)
    for names in ENV_FIELDS.values():
        for name in names:
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv(SETTINGS_ENV, raising=False)

    yield

    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
