"""Gather-merge pipeline over all VPN subsystems of one WireGuard interface.

Subsystems run one after another in a fixed order. Each gather step parses
its sources completely before anything is merged into the report, and a
failing step is recorded and skipped without affecting the others.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from peerstats import config
from peerstats.errors import PeerstatsError
from peerstats.identity import load_ccd_maps, load_chap_secrets, load_cloak_endpoints
from peerstats.merge import merge_into
from peerstats.models import (
    DEFAULT_AGGREGATED,
    MetricKind,
    PeerRecord,
    Protocol,
    Report,
    SubsystemFailure,
)
from peerstats.netutil import skip_subnets
from peerstats.parsers import ipsec, openvpn, outline, proto0, wireguard
from peerstats.parsers.common import read_lines

logger = logging.getLogger(__name__)

Partial = tuple[MetricKind, PeerRecord]


@dataclass
class CollectorOptions:
    wgi: str
    root: str = "/"
    accel_cmd: bool = False
    aggregated: dict[Protocol, int] = field(default_factory=lambda: dict(DEFAULT_AGGREGATED))
    outline_port_key: str = config.OUTLINE_PORT_KEY
    outline_addr_key: str = config.OUTLINE_ADDR_KEY
    http_timeout: float = config.HTTP_TIMEOUT_SECONDS
    command_timeout: float = config.COMMAND_TIMEOUT_SECONDS

    @classmethod
    def from_config(cls, cfg: dict, **kwargs) -> CollectorOptions:
        """Build options from a loaded config dict plus CLI values."""
        opts = cls(**kwargs)
        for name, flag in (cfg.get("aggregated") or {}).items():
            try:
                opts.aggregated[Protocol(name)] = 1 if int(flag) else 0
            except (ValueError, TypeError):
                logger.debug("config: ignoring aggregated flag %r=%r", name, flag)
        for key in ("outline_port_key", "outline_addr_key"):
            if cfg.get(key):
                setattr(opts, key, str(cfg[key]))
        for key in ("http_timeout", "command_timeout"):
            if cfg.get(key):
                setattr(opts, key, float(cfg[key]))
        return opts

    def path(self, template: str) -> str:
        return config.resolve_path(self.root, template, self.wgi)


def collect(options: CollectorOptions) -> Report:
    """Run every subsystem and return the timestamped report."""
    report = Report(aggregated=dict(options.aggregated))

    for what in ("transfer", "latest-handshakes", "endpoints"):
        _run_step(report, f"wireguard {what}", lambda what=what: gather_wireguard(options, what))

    if options.accel_cmd:
        _run_step(report, "ipsec", lambda: gather_ipsec(options))

    cloak_authdb = options.path(config.CLOAK_AUTHDB_PATH)
    cloak_endpoints = _load_optional(
        report, "cloak endpoints", lambda: load_cloak_endpoints(cloak_authdb), default={},
    )

    _run_step(report, "cloak-openvpn", lambda: gather_openvpn(options, cloak_endpoints))
    _run_step(report, "outline-ss", lambda: gather_outline(options, cloak_endpoints))
    _run_step(report, "proto0 stats", lambda: gather_proto0_traffic(options))
    _run_step(report, "proto0 authdb", lambda: gather_proto0_authdb(options))

    report.finalize()
    return report


def _run_step(report: Report, name: str, gather: Callable[[], list[Partial]]) -> None:
    try:
        partials = gather()
    except (PeerstatsError, OSError, ValueError) as e:
        logger.debug("%s: %s", name, e)
        report.failures.append(SubsystemFailure(subsystem=name, error=str(e)))
        return

    for kind, partial in partials:
        merge_into(report, kind, partial)


def _load_optional(report: Report, name: str, load: Callable, default):
    try:
        return load()
    except (PeerstatsError, OSError, ValueError) as e:
        logger.debug("%s: %s", name, e)
        report.failures.append(SubsystemFailure(subsystem=name, error=str(e)))
        return default


def gather_wireguard(options: CollectorOptions, what: str) -> list[Partial]:
    lines = wireguard.wg_show(options.wgi, what, options.command_timeout)
    if what == "transfer":
        return [(MetricKind.TRAFFIC, wireguard.parse_transfer(lines))]
    if what == "latest-handshakes":
        return [(MetricKind.LAST_SEEN, wireguard.parse_latest_handshakes(lines))]
    return [(MetricKind.ENDPOINTS, wireguard.parse_endpoints(lines))]


def gather_ipsec(options: CollectorOptions) -> list[Partial]:
    username2peer = load_chap_secrets(options.path(config.IPSEC_SECRETS_PATH))

    traffic = ipsec.parse_traffic(
        ipsec.show_sessions(options.wgi, ipsec.TRAFFIC_COLUMNS,
                            config.ACCEL_CMD_TIMEOUT_SECONDS, options.command_timeout),
        username2peer,
    )
    endpoints = ipsec.parse_endpoints(
        ipsec.show_sessions(options.wgi, ipsec.ENDPOINT_COLUMNS,
                            config.ACCEL_CMD_TIMEOUT_SECONDS, options.command_timeout),
        username2peer,
    )
    return [
        (MetricKind.TRAFFIC, traffic),
        (MetricKind.LAST_SEEN, ipsec.last_seen_for(traffic)),
        (MetricKind.ENDPOINTS, endpoints),
    ]


def gather_openvpn(options: CollectorOptions, cloak_endpoints: dict[str, str]) -> list[Partial]:
    cn_map, uid_map = load_ccd_maps(options.path(config.OPENVPN_CCD_DIR))
    status_text = "\n".join(read_lines(options.path(config.OPENVPN_STATUS_PATH)))

    block = openvpn.extract_status_block(status_text)
    sessions = openvpn.parse_status(block, cn_map)

    return [
        (MetricKind.TRAFFIC, openvpn.assemble_traffic(sessions)),
        (MetricKind.LAST_SEEN, openvpn.assemble_last_seen(sessions)),
        (MetricKind.ENDPOINTS, openvpn.assemble_endpoints(cloak_endpoints, uid_map, sessions)),
    ]


def gather_outline(options: CollectorOptions, cloak_endpoints: dict[str, str]) -> list[Partial]:
    port, addr = outline.read_port_and_address(
        options.path(config.OUTLINE_ENV_PATH), options.outline_port_key, options.outline_addr_key,
    )
    traffic = outline.parse_traffic(outline.fetch_metrics(port, options.http_timeout))

    last_seen, over_cloak, endpoints = outline.parse_authdb(
        read_lines(options.path(config.OUTLINE_AUTHDB_PATH)), skip_subnets(addr),
    )

    partials = [
        (MetricKind.TRAFFIC, traffic),
        (MetricKind.LAST_SEEN, last_seen),
        (MetricKind.LAST_SEEN, over_cloak),
        (MetricKind.ENDPOINTS, endpoints),
    ]

    try:
        _, uid_map = load_ccd_maps(options.path(config.OPENVPN_CCD_DIR))
    except PeerstatsError as e:
        logger.debug("outline-over-cloak endpoints: %s", e)
    else:
        partials.append((MetricKind.ENDPOINTS, outline.assemble_cloak_endpoints(cloak_endpoints, uid_map)))

    return partials


def gather_proto0_traffic(options: CollectorOptions) -> list[Partial]:
    text = proto0.query_stats(config.PROTO0_API_SERVER, config.PROTO0_STATS_PATTERN,
                              options.command_timeout)
    return [(MetricKind.TRAFFIC, proto0.parse_stats(text))]


def gather_proto0_authdb(options: CollectorOptions) -> list[Partial]:
    last_seen, endpoints = proto0.parse_authdb(read_lines(options.path(config.PROTO0_AUTHDB_PATH)))
    return [
        (MetricKind.LAST_SEEN, last_seen),
        (MetricKind.ENDPOINTS, endpoints),
    ]
