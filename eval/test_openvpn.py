"""Tests for the OpenVPN status.log parser and Cloak endpoint join."""
import pytest

from peerstats.errors import MalformedRecord
from peerstats.models import Endpoint, LastSeen, Protocol, Traffic
from peerstats.parsers import openvpn

STATUS_LOG = """\
OpenVPN CLIENT LIST
Updated,2024-05-01 10:00:00
Common Name,Real Address,Bytes Received,Bytes Sent,Connected Since
client1,127.0.0.1:40000,1000,2000,2024-05-01 09:00:00
client2,127.0.0.1:40002,30,40,2024-05-01 09:30:00
stranger,127.0.0.1:40001,5,6,2024-05-01 09:00:00
ROUTING TABLE
Virtual Address,Common Name,Real Address,Last Ref
10.8.0.2,client1,127.0.0.1:40000,2024-05-01 10:00:00
GLOBAL STATS
Max bcast/mcast queue length,0
END
"""

EMPTY_STATUS_LOG = """\
OpenVPN CLIENT LIST
Updated,2024-05-01 10:00:00
Common Name,Real Address,Bytes Received,Bytes Sent,Connected Since
ROUTING TABLE
Virtual Address,Common Name,Real Address,Last Ref
GLOBAL STATS
END
"""

CN_MAP = {"client1": "KEYONE", "client2": "KEYTWO"}
UID_MAP = {"UID1": "KEYONE", "UID2": "KEYTWO", "UID3": "KEYTHREE"}


def _sessions():
    return openvpn.parse_status(openvpn.extract_status_block(STATUS_LOG), CN_MAP)


def test_extract_status_block_returns_client_rows():
    block = openvpn.extract_status_block(STATUS_LOG)
    assert block.splitlines() == [
        "client1,127.0.0.1:40000,1000,2000,2024-05-01 09:00:00",
        "client2,127.0.0.1:40002,30,40,2024-05-01 09:30:00",
        "stranger,127.0.0.1:40001,5,6,2024-05-01 09:00:00",
    ]


def test_extract_status_block_empty_between_markers():
    assert openvpn.extract_status_block(EMPTY_STATUS_LOG) == ""
    assert openvpn.parse_status("", CN_MAP) == {}


def test_extract_status_block_missing_header():
    text = STATUS_LOG.replace("Common Name,Real Address", "Name,Address")
    with pytest.raises(MalformedRecord):
        openvpn.extract_status_block(text)


def test_extract_status_block_missing_footer():
    text = STATUS_LOG.replace("ROUTING TABLE", "")
    with pytest.raises(MalformedRecord):
        openvpn.extract_status_block(text)


def test_parse_status_drops_unknown_common_names():
    sessions = _sessions()
    assert set(sessions) == {"KEYONE", "KEYTWO"}
    assert sessions["KEYONE"].common_name == "client1"
    assert sessions["KEYONE"].bytes_received == "1000"


def test_parse_status_strict_rows():
    with pytest.raises(MalformedRecord):
        openvpn.parse_status("client1,127.0.0.1:40000,1000", CN_MAP)


def test_assemble_traffic():
    assert openvpn.assemble_traffic(_sessions()) == {
        "KEYONE": {Protocol.OPENVPN_OVER_CLOAK: Traffic(received="1000", sent="2000")},
        "KEYTWO": {Protocol.OPENVPN_OVER_CLOAK: Traffic(received="30", sent="40")},
    }


def test_assemble_last_seen_keyed_by_peer():
    peers = openvpn.assemble_last_seen(_sessions(), timestamp="1714550000")
    assert peers == {
        "KEYONE": {Protocol.OPENVPN_OVER_CLOAK: LastSeen(timestamp="1714550000")},
        "KEYTWO": {Protocol.OPENVPN_OVER_CLOAK: LastSeen(timestamp="1714550000")},
    }


def test_assemble_endpoints_requires_full_chain_and_session():
    cloak_endpoints = {
        "UID1": "91.109.129.0/24",
        "UID3": "217.66.159.0/24",   # known uid, no OpenVPN session
        "UID9": "10.0.0.0/24",       # unknown uid
    }
    assert openvpn.assemble_endpoints(cloak_endpoints, UID_MAP, _sessions()) == {
        "KEYONE": {Protocol.OPENVPN_OVER_CLOAK: Endpoint(subnet="91.109.129.0/24")},
    }
