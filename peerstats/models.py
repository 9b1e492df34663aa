from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Union


class Protocol(str, Enum):
    WIREGUARD = "wireguard"
    IPSEC = "ipsec"
    OPENVPN_OVER_CLOAK = "openvpn-over-cloak"
    OUTLINE = "outline"
    OUTLINE_OVER_CLOAK = "outline-over-cloak"
    PROTO0 = "proto0"


class MetricKind(str, Enum):
    TRAFFIC = "traffic"
    LAST_SEEN = "last-seen"
    ENDPOINTS = "endpoints"


@dataclass(frozen=True)
class Traffic:
    """Cumulative byte counters at observation time, as decimal strings."""
    received: str
    sent: str

    def to_dict(self) -> dict:
        return {"received": self.received, "sent": self.sent}


@dataclass(frozen=True)
class LastSeen:
    """Most recent activity evidence, Unix seconds as a string."""
    timestamp: str

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp}


@dataclass(frozen=True)
class Endpoint:
    """Most recently observed location, already subnet-collapsed."""
    subnet: str

    def to_dict(self) -> dict:
        return {"subnet": self.subnet}


Metric = Union[Traffic, LastSeen, Endpoint]

# peer key -> protocol -> metric. One mapping per metric kind.
PeerRecord = dict[str, dict[Protocol, Metric]]

# 1: counters are cumulative; 0: counters cover the current session only.
DEFAULT_AGGREGATED: dict[Protocol, int] = {
    Protocol.WIREGUARD: 1,
    Protocol.IPSEC: 0,
    Protocol.OPENVPN_OVER_CLOAK: 0,
    Protocol.OUTLINE: 1,
    Protocol.OUTLINE_OVER_CLOAK: 0,
    Protocol.PROTO0: 1,
}


def now_timestamp() -> str:
    """Current wall-clock time as Unix seconds."""
    return str(int(time.time()))


@dataclass
class SubsystemFailure:
    """A subsystem whose contribution was skipped. Diagnostic only."""
    subsystem: str
    error: str


@dataclass
class Report:
    code: str = "0"
    aggregated: dict[Protocol, int] = field(default_factory=lambda: dict(DEFAULT_AGGREGATED))
    traffic: PeerRecord = field(default_factory=dict)
    last_seen: PeerRecord = field(default_factory=dict)
    endpoints: PeerRecord = field(default_factory=dict)
    timestamp: str = ""

    # Not serialized
    failures: list[SubsystemFailure] = field(default_factory=list)

    def records(self, kind: MetricKind) -> PeerRecord:
        if kind is MetricKind.TRAFFIC:
            return self.traffic
        if kind is MetricKind.LAST_SEEN:
            return self.last_seen
        return self.endpoints

    def finalize(self) -> None:
        self.timestamp = now_timestamp()

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "data": {
                "aggregated": {p.value: flag for p, flag in self.aggregated.items()},
                "traffic": _records_to_dict(self.traffic),
                "last-seen": _records_to_dict(self.last_seen),
                "endpoints": _records_to_dict(self.endpoints),
            },
            "timestamp": self.timestamp,
        }


def _records_to_dict(records: PeerRecord) -> dict:
    return {
        key: {proto.value: metric.to_dict() for proto, metric in protos.items()}
        for key, protos in records.items()
    }
