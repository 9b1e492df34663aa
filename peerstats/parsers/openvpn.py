"""OpenVPN (behind Cloak) status.log parser.

Only the CLIENT LIST block of the status file is read; it lists the sessions
that are online right now.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from peerstats.errors import MalformedRecord
from peerstats.identity import chain_endpoints
from peerstats.models import Endpoint, LastSeen, PeerRecord, Protocol, Traffic, now_timestamp

logger = logging.getLogger(__name__)

STATUS_HEADER = "Common Name,Real Address,Bytes Received,Bytes Sent,Connected Since"
STATUS_FOOTER = "ROUTING TABLE"
STATUS_FIELDS = 5


@dataclass
class OpenVPNSession:
    # One field per status-log column; real_address and connected_since
    # are not reported. The endpoint comes from Cloak, not OpenVPN.
    common_name: str
    real_address: str
    bytes_received: str
    bytes_sent: str
    connected_since: str


def extract_status_block(text: str) -> str:
    """Return the rows between the client list header and the routing table."""
    idx = text.find(STATUS_HEADER)
    if idx == -1:
        raise MalformedRecord(f"{STATUS_HEADER!r} not found")
    start = idx + len(STATUS_HEADER)

    end = text.find(STATUS_FOOTER, start)
    if end == -1:
        raise MalformedRecord(f"{STATUS_FOOTER!r} not found")

    return text[start:end].strip("\r\n")


def parse_status(block: str, cn_map: dict[str, str]) -> dict[str, OpenVPNSession]:
    """Parse status rows into sessions keyed by peer key.

    Common names without a ccd annotation are dropped.
    """
    sessions: dict[str, OpenVPNSession] = {}
    for line in block.splitlines():
        line = line.strip()
        if not line:
            continue
        fields = line.split(",")
        if len(fields) != STATUS_FIELDS:
            raise MalformedRecord(f"invalid line: {line!r}")

        key = cn_map.get(fields[0])
        if key is None:
            logger.debug("openvpn: unknown common name %r", fields[0])
            continue
        sessions[key] = OpenVPNSession(*fields)
    return sessions


def assemble_traffic(sessions: dict[str, OpenVPNSession]) -> PeerRecord:
    return {
        key: {Protocol.OPENVPN_OVER_CLOAK: Traffic(received=s.bytes_received, sent=s.bytes_sent)}
        for key, s in sessions.items()
    }


def assemble_last_seen(sessions: dict[str, OpenVPNSession], timestamp: str | None = None) -> PeerRecord:
    ts = timestamp or now_timestamp()
    return {key: {Protocol.OPENVPN_OVER_CLOAK: LastSeen(timestamp=ts)} for key in sessions}


def assemble_endpoints(
    cloak_endpoints: dict[str, str],
    uid_map: dict[str, str],
    sessions: dict[str, OpenVPNSession],
) -> PeerRecord:
    """Endpoints seen by Cloak, for peers with an active OpenVPN session.

    The real address in status.log is Cloak's own loopback connection, so the
    client location comes from the Cloak authdb through the ccd UID.
    """
    return {
        key: {Protocol.OPENVPN_OVER_CLOAK: Endpoint(subnet=subnet)}
        for key, subnet in chain_endpoints(cloak_endpoints, uid_map).items()
        if key in sessions
    }
