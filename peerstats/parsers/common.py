"""Shared helpers for the protocol parsers: line tokenizing, files, commands."""
from __future__ import annotations

import logging
import subprocess
from typing import Callable, Iterable

from peerstats.errors import MalformedRecord, SourceUnavailable
from peerstats.models import PeerRecord

logger = logging.getLogger(__name__)

FieldSetter = Callable[[PeerRecord, list[str]], None]


def parse_fields(
    lines: Iterable[str],
    n_fields: int,
    setter: FieldSetter,
    skip_header: int = 0,
) -> PeerRecord:
    """Split each line on whitespace and hand its fields to setter.

    Every non-blank line must have exactly n_fields fields; the first
    skip_header lines are dropped unread.
    """
    peers: PeerRecord = {}
    for i, line in enumerate(lines):
        if i < skip_header:
            continue
        fields = line.split()
        if not fields:
            continue
        if len(fields) != n_fields:
            raise MalformedRecord(f"invalid line: {line.rstrip()!r}")
        setter(peers, fields)
    return peers


def read_lines(path: str) -> list[str]:
    """Read a text file into lines. Raises SourceUnavailable."""
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read().splitlines()
    except OSError as e:
        raise SourceUnavailable(f"open {path}: {e}") from e


def read_env_file(path: str) -> dict[str, str]:
    """Parse KEY=value lines. Comments and lines without '=' are ignored."""
    values: dict[str, str] = {}
    for line in read_lines(path):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        if "=" not in line:
            continue
        name, value = line.split("=", 1)
        values[name.strip()] = value.strip().strip("'\"")
    return values


def netns_command(wgi: str, *args: str) -> list[str]:
    """Prefix a command so it runs inside the interface's network namespace."""
    return ["ip", "netns", "exec", f"ns{wgi}", *args]


def run_command(cmd: list[str], timeout: float) -> str:
    """Run an external command and return its stdout. Stderr is discarded."""
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        raise SourceUnavailable(f"{cmd[0]}: timed out after {timeout}s") from e
    except OSError as e:
        raise SourceUnavailable(f"{cmd[0]}: {e}") from e

    if result.returncode != 0:
        logger.debug("%s stderr: %s", " ".join(cmd), result.stderr.strip())
        raise SourceUnavailable(f"run command {' '.join(cmd)}: exit status {result.returncode}")
    return result.stdout
