"""Shared configuration for the peerstats collector.

Path templates are relative to the collector's filesystem root (``/`` in
production) and are formatted with the WireGuard interface name.
"""
from __future__ import annotations

import json
import logging
import os

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "PEERSTATS_CONFIG"

# Path templates
IPSEC_SECRETS_PATH = "etc/accel-ppp.chap-secrets.{wgi}"
OPENVPN_STATUS_PATH = "opt/openvpn-{wgi}/status.log"
OPENVPN_CCD_DIR = "opt/openvpn-{wgi}/ccd"
CLOAK_AUTHDB_PATH = "opt/cloak-{wgi}/userinfo/userauthdb.log"
OUTLINE_ENV_PATH = "etc/wg-quick-ns.env.{wgi}"
OUTLINE_AUTHDB_PATH = "opt/outline-ss-{wgi}/authdb.log"
PROTO0_AUTHDB_PATH = "opt/xray-{wgi}/authdb.log"

# Environment keys in the wg-quick-ns env file
OUTLINE_PORT_KEY = "OUTLINE_SS_PORT"
OUTLINE_ADDR_KEY = "EXT_IP"

# Outline metrics endpoint
OUTLINE_METRICS_URL = "http://127.0.0.1:{port}/metrics"
OUTLINE_METRIC_NAME = "shadowsocks_data_bytes"

# Xray stats API
PROTO0_API_SERVER = "127.0.0.1:10444"
PROTO0_STATS_PATTERN = "user"

# Timeouts (seconds)
HTTP_TIMEOUT_SECONDS = 20
COMMAND_TIMEOUT_SECONDS = 10
ACCEL_CMD_TIMEOUT_SECONDS = 3

# Keys accepted in the JSON config file
CONFIG_KEYS = (
    "aggregated",
    "outline_port_key",
    "outline_addr_key",
    "http_timeout",
    "command_timeout",
)


def resolve_path(root: str, template: str, wgi: str) -> str:
    """Join a path template onto the collector root."""
    return os.path.join(root, template.format(wgi=wgi))


def get_config_path(explicit: str | None = None) -> str | None:
    """Config file from --config, falling back to $PEERSTATS_CONFIG."""
    if explicit:
        return explicit
    return os.environ.get(CONFIG_ENV_VAR) or None


def load_config(config_path: str | None) -> dict:
    """Load config from file, returning empty dict if not found or unreadable."""
    if not config_path or not os.path.exists(config_path):
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.debug("Failed to load config %s: %s", config_path, e)
        return {}
    if not isinstance(data, dict):
        return {}

    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        logger.debug("Ignoring unknown config keys: %s", ", ".join(unknown))
    return {k: v for k, v in data.items() if k in CONFIG_KEYS}
