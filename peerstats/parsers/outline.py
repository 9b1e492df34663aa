"""Outline shadowsocks server parsers: Prometheus metrics and the auth log."""
from __future__ import annotations

import logging
from typing import Iterable

import requests
from prometheus_client.parser import text_string_to_metric_families

from peerstats import config
from peerstats.errors import MalformedRecord, SourceUnavailable, UnresolvedIdentity
from peerstats.identity import canonical_key, chain_endpoints
from peerstats.models import Endpoint, LastSeen, PeerRecord, Protocol, Traffic
from peerstats.netutil import ip_to_subnet
from peerstats.parsers.common import read_env_file

logger = logging.getLogger(__name__)

AUTHDB_FIELDS = 4
DIR_RECEIVED = "c<p"
DIR_SENT = "c>p"


def read_port_and_address(env_path: str, port_key: str, addr_key: str) -> tuple[str, str]:
    """Metrics port and relay public address from the wg-quick-ns env file."""
    values = read_env_file(env_path)
    port = values.get(port_key, "")
    addr = values.get(addr_key, "")
    if not port:
        raise SourceUnavailable(f"{port_key} not found in {env_path}")
    if not port.isdigit():
        raise MalformedRecord(f"{port_key}: invalid port {port!r}")
    if not addr:
        raise SourceUnavailable(f"{addr_key} not found in {env_path}")
    return port, addr


def fetch_metrics(port: str, timeout: float) -> str:
    url = config.OUTLINE_METRICS_URL.format(port=port)
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise SourceUnavailable(f"GET {url}: {e}") from e
    return resp.text


def parse_traffic(text: str, metric_name: str = config.OUTLINE_METRIC_NAME) -> PeerRecord:
    """Sum per-key byte counters over all transports.

    ``c<p`` is proxy-to-client (received by the peer), ``c>p`` is
    client-to-proxy (sent by the peer).
    """
    totals: dict[str, list[int]] = {}
    try:
        for family in text_string_to_metric_families(text):
            if family.name != metric_name:
                continue
            for sample in family.samples:
                if sample.name.endswith("_created"):
                    continue
                access_key = sample.labels.get("access_key", "")
                direction = sample.labels.get("dir", "")
                if not access_key or direction not in (DIR_RECEIVED, DIR_SENT):
                    continue
                try:
                    key = canonical_key(access_key)
                except UnresolvedIdentity as e:
                    logger.debug("outline metrics: %s", e)
                    continue

                try:
                    value = int(sample.value)
                except (TypeError, ValueError, OverflowError) as e:
                    raise MalformedRecord(f"{sample.name}: invalid value {sample.value!r}") from e

                counts = totals.setdefault(key, [0, 0])
                counts[0 if direction == DIR_RECEIVED else 1] += value
    except ValueError as e:
        raise MalformedRecord(f"decode metrics: {e}") from e

    return {
        key: {Protocol.OUTLINE: Traffic(received=str(rx), sent=str(tx))}
        for key, (rx, tx) in totals.items()
    }


def parse_authdb(
    lines: Iterable[str], skip: set[str],
) -> tuple[PeerRecord, PeerRecord, PeerRecord]:
    """Split auth log lines into direct and over-Cloak observations.

    Lines are ``<key> <method> <addr:port> <unix seconds>``. A client whose
    subnet is in skip reached the server through the local Cloak relay, so it
    counts as ``outline-over-cloak`` last-seen and reports no endpoint.

    Returns (last_seen, last_seen_over_cloak, endpoints).
    """
    last_seen: PeerRecord = {}
    over_cloak: PeerRecord = {}
    endpoints: PeerRecord = {}

    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if len(fields) != AUTHDB_FIELDS:
            raise MalformedRecord(f"invalid line: {line!r}")

        try:
            key = canonical_key(fields[0])
        except UnresolvedIdentity as e:
            logger.debug("outline authdb: %s", e)
            continue

        subnet = ip_to_subnet(fields[2])
        if subnet in skip:
            over_cloak[key] = {Protocol.OUTLINE_OVER_CLOAK: LastSeen(timestamp=fields[3])}
            continue

        last_seen[key] = {Protocol.OUTLINE: LastSeen(timestamp=fields[3])}
        endpoints[key] = {Protocol.OUTLINE: Endpoint(subnet=subnet)}

    return last_seen, over_cloak, endpoints


def assemble_cloak_endpoints(cloak_endpoints: dict[str, str], uid_map: dict[str, str]) -> PeerRecord:
    """Cloak-side endpoints of every peer resolvable through its ccd UID."""
    return {
        key: {Protocol.OUTLINE_OVER_CLOAK: Endpoint(subnet=subnet)}
        for key, subnet in chain_endpoints(cloak_endpoints, uid_map).items()
    }
