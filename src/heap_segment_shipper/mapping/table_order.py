"""Deterministic processing order for the tables and files of a dump.

Table ranks (lower runs first, table name breaks ties):

    1  user_migrations   alias     populates the identity cache
    2  <anything else>   track     resolves ids through the identity cache
    3  sessions          session   populates the session cache
    4  pageviews         page      reads the session cache for referrers
    5  users             identify  synthesizes aliases from the identity cache

The rank is load-bearing: a cache must be fully populated before any table
whose transform reads it. A type override from configuration keeps the rank
of the overriding type.

File order:
    Lexicographic by path, except for the identity-bearing tables (`users`,
    `user_migrations`) whose parts are numbered by Heap in import sequence and
    sort by that number instead (part 10 after part 2).
"""
from __future__ import annotations

import logging
import posixpath
import re
from typing import Iterable, List, Mapping, Optional, Tuple

from ..models.heap import ManifestTable

logger = logging.getLogger(__name__)

TABLE_CLASSES = {
    "user_migrations": (1, "alias"),
    "sessions": (3, "session"),
    "pageviews": (4, "page"),
    "users": (5, "identify"),
}
DEFAULT_CLASS = (2, "track")
TYPE_RANKS = {table_type: rank for rank, table_type in [DEFAULT_CLASS, *TABLE_CLASSES.values()]}
# Ranks for types outside the known set sort after every known table.
UNKNOWN_TYPE_RANK = 99
SEQUENCED_TABLES = frozenset({"users", "user_migrations"})

_LEADING_DIGITS = re.compile(r"\d+")

__all__ = [
    "classify_table",
    "event_name_for",
    "file_sequence",
    "order_files",
    "order_tables",
]


def classify_table(name: str, overrides: Optional[Mapping[str, str]] = None) -> Tuple[int, str]:
    """Return (rank, type tag) for a table name."""
    if overrides and name in overrides:
        table_type = overrides[name]
        return TYPE_RANKS.get(table_type, UNKNOWN_TYPE_RANK), table_type
    return TABLE_CLASSES.get(name, DEFAULT_CLASS)


def order_tables(
    tables: Iterable[ManifestTable],
    skip_tables: Iterable[str] = (),
    overrides: Optional[Mapping[str, str]] = None,
) -> List[ManifestTable]:
    """Drop skipped tables, tag each remaining table with its type and sort.

    Returns new table models; the inputs are not modified.
    """
    skipped = set(skip_tables)
    keyed = []
    for table in tables:
        if table.name in skipped:
            logger.info("Skipping table(%s)", table.name)
            continue
        rank, table_type = classify_table(table.name, overrides)
        keyed.append(((rank, table.name), table.model_copy(update={"type": table_type})))
    keyed.sort(key=lambda pair: pair[0])
    for key, table in keyed:
        logger.info("Order key %s type=%s", key, table.type)
    return [table for _, table in keyed]


def event_name_for(table_name: str) -> str:
    """`order_completed` -> `Order Completed`."""
    return " ".join(word.capitalize() for word in table_name.split("_"))


def file_sequence(path: str) -> int:
    """Import sequence number encoded in a part file's base name.

    Uses the digits leading the segment before the first underscore
    (`0003_part_00` -> 3). Base names without such a prefix fall back to their
    first digit run (`part_10` -> 10); names without digits sort as 0.
    """
    basename = posixpath.basename(path)
    head = basename.split("_", 1)[0]
    match = _LEADING_DIGITS.match(head) or _LEADING_DIGITS.search(basename)
    return int(match.group()) if match else 0


def order_files(table: ManifestTable) -> List[str]:
    files = sorted(table.files)
    if table.name in SEQUENCED_TABLES:
        files.sort(key=lambda path: (file_sequence(path), path))
    return files
