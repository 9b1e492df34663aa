"""WireGuard ``wg show`` parsers. Peer keys are already canonical."""
from __future__ import annotations

from typing import Iterable

from peerstats.models import Endpoint, LastSeen, PeerRecord, Protocol, Traffic
from peerstats.netutil import ip_to_subnet
from peerstats.parsers.common import netns_command, parse_fields, run_command

NO_ENDPOINT = "(none)"


def parse_transfer(lines: Iterable[str]) -> PeerRecord:
    """``<key> <rx> <tx>`` per line."""
    def setter(peers: PeerRecord, fields: list[str]) -> None:
        peers[fields[0]] = {Protocol.WIREGUARD: Traffic(received=fields[1], sent=fields[2])}

    return parse_fields(lines, 3, setter)


def parse_latest_handshakes(lines: Iterable[str]) -> PeerRecord:
    """``<key> <unix seconds>`` per line."""
    def setter(peers: PeerRecord, fields: list[str]) -> None:
        peers[fields[0]] = {Protocol.WIREGUARD: LastSeen(timestamp=fields[1])}

    return parse_fields(lines, 2, setter)


def parse_endpoints(lines: Iterable[str]) -> PeerRecord:
    """``<key> <addr:port>`` per line; peers without an endpoint are skipped."""
    def setter(peers: PeerRecord, fields: list[str]) -> None:
        if fields[1] == NO_ENDPOINT:
            return
        peers[fields[0]] = {Protocol.WIREGUARD: Endpoint(subnet=ip_to_subnet(fields[1]))}

    return parse_fields(lines, 2, setter)


def wg_show(wgi: str, what: str, timeout: float) -> list[str]:
    stdout = run_command(netns_command(wgi, "wg", "show", wgi, what), timeout)
    return stdout.splitlines()
