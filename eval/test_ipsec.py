"""Tests for the accel-ppp session parsers."""
import pytest

from peerstats.errors import MalformedRecord
from peerstats.models import Endpoint, LastSeen, Protocol, Traffic
from peerstats.parsers import ipsec

USERNAME2PEER = {"alice": "Zm9v+/8=", "bob": "YmFy"}

TRAFFIC_OUTPUT = """\
 username | rx-bytes-raw | tx-bytes-raw
----------+--------------+--------------
 alice    | 1024         | 2048
 mallory  | 1            | 2
 bob      | 0            | 77
"""

ENDPOINT_OUTPUT = """\
 username | subnet
----------+---------------
 alice    | 198.51.100.23
 mallory  | 192.0.2.1
 bob      | 10.20.30.40/32
"""


def test_parse_traffic_resolves_usernames():
    peers = ipsec.parse_traffic(TRAFFIC_OUTPUT.splitlines(), USERNAME2PEER)
    assert peers == {
        "Zm9v+/8=": {Protocol.IPSEC: Traffic(received="1024", sent="2048")},
        "YmFy": {Protocol.IPSEC: Traffic(received="0", sent="77")},
    }


def test_parse_endpoints_normalizes():
    peers = ipsec.parse_endpoints(ENDPOINT_OUTPUT.splitlines(), USERNAME2PEER)
    assert peers == {
        "Zm9v+/8=": {Protocol.IPSEC: Endpoint(subnet="198.51.100.0/24")},
        "YmFy": {Protocol.IPSEC: Endpoint(subnet="10.20.30.0/24")},
    }


def test_unknown_username_excluded_from_every_kind():
    traffic = ipsec.parse_traffic(TRAFFIC_OUTPUT.splitlines(), USERNAME2PEER)
    endpoints = ipsec.parse_endpoints(ENDPOINT_OUTPUT.splitlines(), USERNAME2PEER)
    last_seen = ipsec.last_seen_for(traffic)

    for record in (traffic, endpoints, last_seen):
        assert "mallory" not in record
        assert "" not in record
        assert len(record) == 2


def test_last_seen_is_synthesized_for_active_sessions():
    traffic = ipsec.parse_traffic(TRAFFIC_OUTPUT.splitlines(), USERNAME2PEER)
    assert ipsec.last_seen_for(traffic, timestamp="1714550000") == {
        "Zm9v+/8=": {Protocol.IPSEC: LastSeen(timestamp="1714550000")},
        "YmFy": {Protocol.IPSEC: LastSeen(timestamp="1714550000")},
    }


def test_header_only_output_is_empty():
    lines = TRAFFIC_OUTPUT.splitlines()[:2]
    assert ipsec.parse_traffic(lines, USERNAME2PEER) == {}


def test_malformed_session_row():
    lines = TRAFFIC_OUTPUT.splitlines()[:2] + [" alice | 1024"]
    with pytest.raises(MalformedRecord):
        ipsec.parse_traffic(lines, USERNAME2PEER)
