"""Shared test fixtures for agent-supervisor tests."""

import logging

import pytest
import structlog
from rich.console import Console
from structlog.testing import LogCapture

from tests.helpers import CapturedLog


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def captured_log() -> CapturedLog:
    capture = LogCapture()
    logger = structlog.wrap_logger(
        structlog.ReturnLogger(),
        processors=[capture],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
    )
    return CapturedLog(logger=logger, capture=capture)


@pytest.fixture
def console() -> Console:
    return Console(
        width=120,
        force_terminal=True,
        highlight=False,
        color_system=None,
        legacy_windows=False,
    )
