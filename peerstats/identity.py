"""Resolution of subsystem-local identifiers to canonical peer keys.

The canonical identity of a peer everywhere in the report is its WireGuard
public key in standard base64. Each subsystem names peers differently:

- OpenVPN: the common name, i.e. the ccd file name. The first ``#<key> <uid>``
  annotation inside that file gives the peer key and its Cloak UID.
- Cloak: the UID. Its own authdb maps UID to the last client address.
- accel-ppp (IPsec): the PPP username. The chap-secrets line carries the key
  as a trailing ``#<key>`` comment field.
- Outline and Xray: the key itself, URL-safe encoded.
"""
from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Iterable

from peerstats.errors import MalformedRecord, SourceUnavailable, UnresolvedIdentity
from peerstats.netutil import ip_to_subnet
from peerstats.parsers.common import read_lines

logger = logging.getLogger(__name__)

CHAP_SECRETS_FIELDS = 6
CLOAK_AUTHDB_FIELDS = 2


def canonical_key(raw: str) -> str:
    """Convert a URL-safe base64 key to standard base64 and validate it."""
    if not raw:
        raise UnresolvedIdentity("empty key")
    pub = raw.replace("-", "+").replace("_", "/")
    try:
        base64.b64decode(pub, validate=True)
    except (binascii.Error, ValueError) as e:
        raise UnresolvedIdentity(f"b64std decode {raw!r}: {e}") from e
    return pub


def parse_ccd_annotation(lines: Iterable[str]) -> tuple[str, str] | None:
    """Return (key, uid) from the first well-formed ``#<key> <uid>`` line."""
    for line in lines:
        line = line.rstrip()
        if not line.startswith("#"):
            continue
        parts = line[1:].split(" ")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            continue
        return parts[0], parts[1]
    return None


def load_ccd_maps(ccd_dir: str) -> tuple[dict[str, str], dict[str, str]]:
    """Build (common name -> key, uid -> key) from an OpenVPN ccd directory.

    Files that cannot be read or carry no annotation are skipped.
    """
    try:
        entries = sorted(os.listdir(ccd_dir))
    except OSError as e:
        raise SourceUnavailable(f"read ccd dir {ccd_dir}: {e}") from e

    cn_map: dict[str, str] = {}
    uid_map: dict[str, str] = {}
    for name in entries:
        path = os.path.join(ccd_dir, name)
        if not os.path.isfile(path):
            continue
        try:
            mapping = parse_ccd_annotation(read_lines(path))
        except SourceUnavailable as e:
            logger.debug("skip ccd file: %s", e)
            continue
        if mapping is None:
            logger.debug("skip ccd file %s: no annotation", name)
            continue
        key, uid = mapping
        cn_map[name] = key
        uid_map[uid] = key
    return cn_map, uid_map


def parse_chap_secrets(lines: Iterable[str]) -> dict[str, str]:
    """Map PPP username -> peer key from chap-secrets lines.

    Lines look like ``"user" * "secret" * <ip> #<key>``. The file is
    authoritative, so any other field count is an error. Users whose comment
    field is not a key are left out.
    """
    username2peer: dict[str, str] = {}
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        fields = stripped.split()
        if len(fields) != CHAP_SECRETS_FIELDS:
            raise MalformedRecord(f"invalid line: {line!r}")
        username = fields[0].replace('"', "")
        try:
            key = canonical_key(fields[5].removeprefix("#"))
        except UnresolvedIdentity as e:
            logger.debug("chap-secrets: skip user %r: %s", username, e)
            continue
        username2peer[username] = key
    return username2peer


def load_chap_secrets(path: str) -> dict[str, str]:
    return parse_chap_secrets(read_lines(path))


def parse_cloak_authdb(lines: Iterable[str]) -> dict[str, str]:
    """Map Cloak UID -> normalized subnet of its last client address."""
    uid2ip: dict[str, str] = {}
    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if len(fields) != CLOAK_AUTHDB_FIELDS:
            raise MalformedRecord(f"invalid line: {line!r}")
        uid2ip[fields[0]] = fields[1]

    return {uid: ip_to_subnet(ip) for uid, ip in uid2ip.items()}


def load_cloak_endpoints(path: str) -> dict[str, str]:
    return parse_cloak_authdb(read_lines(path))


def chain_endpoints(cloak_endpoints: dict[str, str], uid_map: dict[str, str]) -> dict[str, str]:
    """Join uid -> key with uid -> subnet into key -> subnet.

    Only identities known on both sides of the chain are returned.
    """
    resolved: dict[str, str] = {}
    for uid, key in uid_map.items():
        subnet = cloak_endpoints.get(uid)
        if subnet is not None:
            resolved[key] = subnet
    return resolved
