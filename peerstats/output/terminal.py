"""Rich diagnostic summary, printed to stderr in --debug mode."""
from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from peerstats.models import MetricKind, Protocol, Report


def render_summary(report: Report, console: Console) -> None:
    """Skipped subsystems, one line each, then per-protocol peer counts."""
    for failure in report.failures:
        console.print(f"[yellow]skipped[/yellow] {escape(failure.subsystem)}: {escape(failure.error)}",
                      highlight=False)

    table = Table(title=f"peers at {report.timestamp or '-'}")
    table.add_column("protocol")
    table.add_column("aggregated", justify="right")
    for kind in MetricKind:
        table.add_column(kind.value, justify="right")

    counts = _protocol_counts(report)
    for proto in Protocol:
        row = [proto.value, str(report.aggregated.get(proto, "-"))]
        row.extend(str(counts[kind].get(proto, 0)) for kind in MetricKind)
        table.add_row(*row)

    console.print(table)


def _protocol_counts(report: Report) -> dict[MetricKind, dict[Protocol, int]]:
    counts: dict[MetricKind, dict[Protocol, int]] = {}
    for kind in MetricKind:
        per_proto: dict[Protocol, int] = {}
        for protos in report.records(kind).values():
            for proto in protos:
                per_proto[proto] = per_proto.get(proto, 0) + 1
        counts[kind] = per_proto
    return counts
