"""Tests for the Outline metrics and auth log parsers."""
import unittest.mock as mock

import pytest
import requests

from peerstats.errors import MalformedRecord, SourceUnavailable
from peerstats.models import Endpoint, LastSeen, Protocol, Traffic
from peerstats.netutil import skip_subnets
from peerstats.parsers import outline

METRICS = """\
# HELP shadowsocks_data_bytes Bytes transferred by the proxy
# TYPE shadowsocks_data_bytes counter
shadowsocks_data_bytes{access_key="Zm9v-_8=",dir="c<p",proto="tcp"} 1.5e+03
shadowsocks_data_bytes{access_key="Zm9v-_8=",dir="c<p",proto="udp"} 500
shadowsocks_data_bytes{access_key="Zm9v-_8=",dir="c>p",proto="tcp"} 300
shadowsocks_data_bytes{access_key="YmFy",dir="p>t",proto="tcp"} 7
shadowsocks_data_bytes{access_key="",dir="c<p",proto="tcp"} 9
shadowsocks_data_bytes{access_key="bad*key",dir="c<p",proto="tcp"} 9
# HELP shadowsocks_keys Count of access keys
# TYPE shadowsocks_keys gauge
shadowsocks_keys 2
"""

AUTHDB = """\
Zm9v-_8= chacha20-ietf-poly1305 198.51.100.23:5000 1714550000
YmFy chacha20-ietf-poly1305 127.0.0.1:40000 1714550100
YmF6 chacha20-ietf-poly1305 203.0.113.9:1234 1714550200
bad*key chacha20-ietf-poly1305 198.51.100.1:1 1714550300
"""


# ── metrics ────────────────────────────────────────────────────────


def test_parse_traffic_sums_transports():
    assert outline.parse_traffic(METRICS) == {
        "Zm9v+/8=": {Protocol.OUTLINE: Traffic(received="2000", sent="300")},
    }


def test_parse_traffic_ignores_other_metrics():
    assert outline.parse_traffic("# TYPE shadowsocks_keys gauge\nshadowsocks_keys 2\n") == {}


@pytest.mark.parametrize("value", ["+Inf", "-Inf", "NaN"])
def test_parse_traffic_rejects_non_finite_counter(value):
    text = f'shadowsocks_data_bytes{{access_key="Zm9v",dir="c<p"}} {value}\n'
    with pytest.raises(MalformedRecord):
        outline.parse_traffic(text)


def test_fetch_metrics_uses_local_port_and_timeout():
    resp = mock.Mock(text=METRICS)
    with mock.patch("requests.get", return_value=resp) as mock_get:
        text = outline.fetch_metrics("9091", timeout=20)

    assert text == METRICS
    mock_get.assert_called_once_with("http://127.0.0.1:9091/metrics", timeout=20)
    resp.raise_for_status.assert_called_once()


def test_fetch_metrics_unreachable():
    with mock.patch("requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
        with pytest.raises(SourceUnavailable):
            outline.fetch_metrics("9091", timeout=20)


# ── env file ───────────────────────────────────────────────────────


def test_read_port_and_address(tmp_path):
    env = tmp_path / "wg-quick-ns.env.wg7"
    env.write_text("# generated\nOUTLINE_SS_PORT=9091\nEXT_IP='203.0.113.7'\nOTHER\n")

    assert outline.read_port_and_address(str(env), "OUTLINE_SS_PORT", "EXT_IP") == (
        "9091", "203.0.113.7",
    )


def test_read_port_missing(tmp_path):
    env = tmp_path / "wg-quick-ns.env.wg7"
    env.write_text("EXT_IP=203.0.113.7\n")
    with pytest.raises(SourceUnavailable):
        outline.read_port_and_address(str(env), "OUTLINE_SS_PORT", "EXT_IP")


def test_read_port_not_numeric(tmp_path):
    env = tmp_path / "wg-quick-ns.env.wg7"
    env.write_text("OUTLINE_SS_PORT=abc\nEXT_IP=203.0.113.7\n")
    with pytest.raises(MalformedRecord):
        outline.read_port_and_address(str(env), "OUTLINE_SS_PORT", "EXT_IP")


# ── auth log ───────────────────────────────────────────────────────


def test_parse_authdb_splits_direct_and_over_cloak():
    last_seen, over_cloak, endpoints = outline.parse_authdb(
        AUTHDB.splitlines(), skip_subnets("203.0.113.7"),
    )

    assert last_seen == {"Zm9v+/8=": {Protocol.OUTLINE: LastSeen(timestamp="1714550000")}}
    assert endpoints == {"Zm9v+/8=": {Protocol.OUTLINE: Endpoint(subnet="198.51.100.0/24")}}
    assert over_cloak == {
        "YmFy": {Protocol.OUTLINE_OVER_CLOAK: LastSeen(timestamp="1714550100")},
        "YmF6": {Protocol.OUTLINE_OVER_CLOAK: LastSeen(timestamp="1714550200")},
    }


def test_parse_authdb_overlay_is_exclusive():
    last_seen, over_cloak, endpoints = outline.parse_authdb(
        AUTHDB.splitlines(), skip_subnets("203.0.113.7"),
    )
    assert not set(over_cloak) & set(last_seen)
    assert not set(over_cloak) & set(endpoints)


def test_parse_authdb_strict_field_count():
    with pytest.raises(MalformedRecord):
        outline.parse_authdb(["Zm9v-_8= 198.51.100.23:5000 1714550000"], set())


def test_assemble_cloak_endpoints():
    uid_map = {"UID123": "KEYXYZ", "UID5": "KEYFIVE"}
    cloak_endpoints = {"UID123": "10.8.0.0/24"}

    assert outline.assemble_cloak_endpoints(cloak_endpoints, uid_map) == {
        "KEYXYZ": {Protocol.OUTLINE_OVER_CLOAK: Endpoint(subnet="10.8.0.0/24")},
    }
