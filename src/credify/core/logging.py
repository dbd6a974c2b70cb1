"""
Logging configuration.

The packaged YAML config (`src/credify/config/logging.yaml`) defines handlers and
formatters; the level comes from settings (`CREDIFY_LOG_LEVEL`) unless the caller
(e.g. the CLI `--log-level` flag) passes one explicitly.
"""

from __future__ import annotations

import copy
import logging.config

from credify.config.settings import get_logging_config, get_settings


def configure_logging(level: str | None = None) -> None:
    """Apply the packaged logging config with the effective level."""
    effective = (level or get_settings().app.log_level).upper()
    # The loaded config is cached; never mutate the shared dict.
    config = copy.deepcopy(get_logging_config())

    config.setdefault("root", {})["level"] = effective
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = effective
    for name, logger_cfg in config.get("loggers", {}).items():
        if name.startswith("credify") and isinstance(logger_cfg, dict):
            logger_cfg["level"] = effective

    logging.config.dictConfig(config)
