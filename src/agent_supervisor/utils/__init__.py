"""Shared utilities for the agent supervisor."""

from ._logging import LogFormatType, create_logger, get_default_logger

__all__ = ["LogFormatType", "create_logger", "get_default_logger"]
