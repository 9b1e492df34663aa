"""Xray ("proto0") parsers: stats API output and the auth log."""
from __future__ import annotations

import json
import logging
from typing import Iterable

from peerstats.errors import MalformedRecord, UnresolvedIdentity
from peerstats.identity import canonical_key
from peerstats.models import Endpoint, LastSeen, PeerRecord, Protocol, Traffic
from peerstats.netutil import ip_to_subnet
from peerstats.parsers.common import run_command

logger = logging.getLogger(__name__)

AUTHDB_FIELDS = 4
STAT_SEPARATOR = ">>>"


def parse_stats(text: str) -> PeerRecord:
    """Parse ``xray api statsquery`` JSON.

    Stat names look like ``user>>><key>>>>traffic>>>uplink``; uplink is what
    the peer sent, downlink what it received. Zero values may be omitted.
    """
    try:
        data = json.loads(text or "{}")
    except json.JSONDecodeError as e:
        raise MalformedRecord(f"decode stats: {e}") from e

    if not isinstance(data, dict):
        raise MalformedRecord(f"decode stats: expected an object, got {type(data).__name__}")
    stats = data.get("stat") or []
    if not isinstance(stats, list):
        raise MalformedRecord("decode stats: 'stat' is not a list")

    counters: dict[str, dict[str, str]] = {}
    for stat in stats:
        if not isinstance(stat, dict) or not isinstance(stat.get("name", ""), str):
            raise MalformedRecord(f"invalid stat: {stat!r}")
        parts = stat.get("name", "").split(STAT_SEPARATOR)
        if len(parts) != 4:
            logger.debug("proto0: invalid field count: %d", len(parts))
            continue
        if parts[0] != "user" or parts[2] != "traffic":
            logger.debug("proto0: invalid field: %s %s", parts[0], parts[2])
            continue
        if parts[3] not in ("uplink", "downlink"):
            logger.debug("proto0: invalid field 3: %s", parts[3])
            continue
        try:
            key = canonical_key(parts[1])
        except UnresolvedIdentity as e:
            logger.debug("proto0 stats: %s", e)
            continue

        try:
            value = str(int(stat.get("value", 0)))
        except (TypeError, ValueError, OverflowError) as e:
            raise MalformedRecord(f"{stat['name']}: invalid value {stat.get('value')!r}") from e
        direction = "sent" if parts[3] == "uplink" else "received"
        counters.setdefault(key, {"received": "0", "sent": "0"})[direction] = value

    return {
        key: {Protocol.PROTO0: Traffic(received=c["received"], sent=c["sent"])}
        for key, c in counters.items()
    }


def parse_authdb(lines: Iterable[str]) -> tuple[PeerRecord, PeerRecord]:
    """Lines are ``<key> <method> <addr:port> <unix seconds>``.

    Returns (last_seen, endpoints).
    """
    last_seen: PeerRecord = {}
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
            logger.debug("proto0 authdb: %s", e)
            continue

        subnet = ip_to_subnet(fields[2])
        last_seen[key] = {Protocol.PROTO0: LastSeen(timestamp=fields[3])}
        endpoints[key] = {Protocol.PROTO0: Endpoint(subnet=subnet)}

    return last_seen, endpoints


def query_stats(server: str, pattern: str, timeout: float) -> str:
    cmd = ["xray", "api", "statsquery", f"--server={server}", "-pattern", pattern]
    return run_command(cmd, timeout)
