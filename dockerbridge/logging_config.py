"""Logging configuration with JSON formatting.

This module provides structured logging for the bridge:
- JSON-formatted log output for easy parsing by log aggregation systems
- A text format for development

Every entry carries the plugin context (node, plugin version and the
network driver it serves) so logs from v1 and v2 plugins running on the
same host can be told apart.

The host process calls setup_logging() once at startup; importing the
bridge never touches the root logger.
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from dockerbridge.config import settings

SERVICE_NAME = "dockerbridge"

# LogRecord attributes that are not user-supplied extras
_STANDARD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message",
}


class _PluginContextFormatter(logging.Formatter):
    def __init__(self, node_name: str = "", plugin_version: str = "", network_type: str = ""):
        super().__init__()
        self.node_name = node_name
        self.plugin_version = plugin_version
        self.network_type = network_type

    def context(self) -> dict[str, str]:
        """Non-empty plugin context fields."""
        fields = {
            "node": self.node_name,
            "plugin_version": self.plugin_version,
            "network_type": self.network_type,
        }
        return {key: value for key, value in fields.items() if value}


class BridgeJSONFormatter(_PluginContextFormatter):
    """JSON log formatter, one object per line.

    Fields: timestamp, level, logger, message, service, then the plugin
    context (node, plugin_version, network_type) when configured, the
    formatted exception and any `extra=` values under "extra".
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": SERVICE_NAME,
        }
        log_entry.update(self.context())

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS:
                continue
            try:
                json.dumps(value)
                extra[key] = value
            except (TypeError, ValueError):
                extra[key] = str(value)

        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry)


class BridgeTextFormatter(_PluginContextFormatter):
    """Text log formatter (development use).

    [timestamp] LEVEL [node network_type@plugin_version] logger: message
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

        tags = []
        if self.node_name:
            tags.append(self.node_name)
        if self.network_type:
            driver = self.network_type
            if self.plugin_version:
                driver += f"@{self.plugin_version}"
            tags.append(driver)
        context_part = f" [{' '.join(tags)}]" if tags else ""

        message = f"[{timestamp}] {record.levelname:8}{context_part} {record.name}: {record.getMessage()}"

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


def setup_logging(node_name: str = "") -> None:
    """Configure root logging based on settings.

    Args:
        node_name: Node identifier for inclusion in log entries
            (defaults to settings.node_name)
    """
    node_name = node_name or settings.node_name
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    # Unknown plugin versions are rejected by Settings.network_type at startup
    network_type = settings.docker_network_types.get(settings.plugin_version, "")

    if settings.log_format.lower() == "json":
        formatter_class = BridgeJSONFormatter
    else:
        formatter_class = BridgeTextFormatter

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter_class(node_name, settings.plugin_version, network_type))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)
    root_logger.addHandler(handler)

    # Reduce noise from the docker SDK and its HTTP stack
    for name in ("docker", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)
