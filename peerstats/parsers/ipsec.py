"""accel-ppp session parsers.

``accel-cmd show sessions`` prints a header and a separator line, then one
row per session with columns separated by ``|``::

     username | rx-bytes-raw | tx-bytes-raw
    ----------+--------------+--------------
     alice    | 1024         | 2048
"""
from __future__ import annotations

import logging
from typing import Iterable

from peerstats.models import Endpoint, LastSeen, PeerRecord, Protocol, Traffic, now_timestamp
from peerstats.netutil import ip_to_subnet
from peerstats.parsers.common import netns_command, parse_fields, run_command

logger = logging.getLogger(__name__)

HEADER_LINES = 2
TRAFFIC_COLUMNS = "username,rx-bytes-raw,tx-bytes-raw"
ENDPOINT_COLUMNS = "username,subnet"


def parse_traffic(lines: Iterable[str], username2peer: dict[str, str]) -> PeerRecord:
    def setter(peers: PeerRecord, fields: list[str]) -> None:
        key = username2peer.get(fields[0])
        if key is None:
            logger.debug("ipsec: unknown username %r", fields[0])
            return
        peers[key] = {Protocol.IPSEC: Traffic(received=fields[2], sent=fields[4])}

    return parse_fields(lines, 5, setter, skip_header=HEADER_LINES)


def parse_endpoints(lines: Iterable[str], username2peer: dict[str, str]) -> PeerRecord:
    def setter(peers: PeerRecord, fields: list[str]) -> None:
        key = username2peer.get(fields[0])
        if key is None:
            logger.debug("ipsec: unknown username %r", fields[0])
            return
        address = fields[2].split("/", 1)[0]
        peers[key] = {Protocol.IPSEC: Endpoint(subnet=ip_to_subnet(address))}

    return parse_fields(lines, 3, setter, skip_header=HEADER_LINES)


def last_seen_for(traffic: PeerRecord, timestamp: str | None = None) -> PeerRecord:
    """Peers holding a session are seen now; accel-ppp keeps no activity log."""
    ts = timestamp or now_timestamp()
    return {key: {Protocol.IPSEC: LastSeen(timestamp=ts)} for key in traffic}


def show_sessions(wgi: str, columns: str, accel_timeout: int, timeout: float) -> list[str]:
    cmd = netns_command(
        wgi, "accel-cmd", "-4", "-t", str(accel_timeout), "show", "sessions", columns,
    )
    return run_command(cmd, timeout).splitlines()
