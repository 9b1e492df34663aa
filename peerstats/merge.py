"""Two-level merge of partial per-protocol peer records."""
from __future__ import annotations

from peerstats.models import MetricKind, PeerRecord, Report


def merge_peers(dest: PeerRecord, src: PeerRecord) -> PeerRecord:
    """Fold src into dest and return dest.

    Peers missing from dest are inserted; for peers present in both, the
    protocol maps are combined and a protocol present in both takes the value
    from src. Other protocols of that peer are kept.
    """
    for key, protos in src.items():
        existing = dest.get(key)
        if existing is None:
            dest[key] = dict(protos)
            continue
        existing.update(protos)
    return dest


def merge_into(report: Report, kind: MetricKind, partial: PeerRecord) -> None:
    """Fold one subsystem's finished partial map into the report."""
    merge_peers(report.records(kind), partial)
