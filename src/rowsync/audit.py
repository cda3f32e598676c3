"""
Audit Rollup.

For each usable table the full fingerprint stream is written, in key order,
to ``<table>.tsv.gz`` (``key\\tchecksum`` per line) while a running CRC-32
over every key and checksum produces the table's rollup value. One line
``table\\trollup\\trow_count`` per table goes to the ``tables.tsv``
manifest. The rollup is order dependent on purpose.

Layout::

    <output_dir>/<host>.<database>/tables.tsv
    <output_dir>/<host>.<database>/<table>.tsv.gz
"""

import gzip
import logging
import time
import zlib
from dataclasses import dataclass
from itertools import islice
from pathlib import Path
from typing import Any, Iterable, Iterator

from syncutils.tracing import trace_operation

from .errors import AuditFormatError, SkipTable
from .keys import RowFingerprint, decode_key, encode_key
from .metrics import TABLES_SKIPPED
from .schema.models import Table

logger = logging.getLogger(__name__)

MANIFEST_NAME = "tables.tsv"
FINGERPRINT_SUFFIX = ".tsv.gz"


@dataclass(frozen=True)
class ManifestEntry:
    table: str
    rollup: str
    row_count: int

    def to_line(self) -> str:
        return f"{self.table}\t{self.rollup}\t{self.row_count}\n"

    @classmethod
    def from_line(cls, line: str) -> "ManifestEntry":
        fields = [f.strip() for f in line.rstrip("\n").split("\t")]
        if len(fields) != 3:
            raise AuditFormatError(f"Malformed manifest line: {line!r}")
        try:
            return cls(fields[0], fields[1], int(fields[2]))
        except ValueError as e:
            raise AuditFormatError(f"Malformed row count in manifest line: {line!r}") from e


def read_manifest(directory: Path) -> dict[str, ManifestEntry]:
    """Read ``tables.tsv`` from an audit directory; blank lines are ignored."""
    path = Path(directory) / MANIFEST_NAME
    entries = {}
    with open(path, encoding="utf-8") as f:
        for line in f:
            if line.strip():
                entry = ManifestEntry.from_line(line)
                entries[entry.table] = entry
    return entries


def fingerprint_path(directory: Path, table_name: str) -> Path:
    return Path(directory) / f"{table_name}{FINGERPRINT_SUFFIX}"


def read_fingerprints(path: Path) -> Iterator[RowFingerprint]:
    """Lazily read a persisted fingerprint stream."""
    with gzip.open(path, "rt", encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip("\n")
            if not line:
                continue
            key_text, sep, checksum = line.partition("\t")
            if not sep:
                raise AuditFormatError(f"{path}:{line_number}: missing checksum field")
            yield RowFingerprint(decode_key(key_text.strip()), checksum.strip())


class Rollup:
    """Order-dependent CRC-32 over a fingerprint stream."""

    def __init__(self):
        self.value = 0
        self.count = 0

    def update(self, key_text: str, checksum: str) -> None:
        self.value = zlib.crc32(key_text.encode("utf-8"), self.value)
        self.value = zlib.crc32(checksum.encode("utf-8"), self.value)
        self.count += 1

    def hexdigest(self) -> str:
        return f"{self.value:08x}"


def rollup_of(fingerprints: Iterable[RowFingerprint]) -> str:
    rollup = Rollup()
    for fp in fingerprints:
        rollup.update(encode_key(fp.key), fp.checksum)
    return rollup.hexdigest()


def audit_directory(output_dir: Path, label: str) -> Path:
    """``<output_dir>/<host>.<database>``"""
    return Path(output_dir) / label


@dataclass
class AuditedTable:
    entry: ManifestEntry
    seconds: float

    @property
    def rows_per_second(self) -> float:
        return self.entry.row_count / self.seconds if self.seconds > 0 else 0.0


def audit_table(
    gateway: Any, table: Table, directory: Path, row_limit: int | None = None
) -> AuditedTable:
    """
    Stream one table's fingerprints to disk and compute its rollup.

    Raises:
        SkipTable: The table cannot be fingerprinted
    """
    reason = table.unusable_reason()
    if reason:
        raise SkipTable(table.name, reason)

    started = time.monotonic()
    rollup = Rollup()
    with trace_operation("audit_table", table=table.name) as span:
        stream = gateway.stream_fingerprints(table)
        if row_limit is not None:
            stream = islice(stream, row_limit)

        with gzip.open(fingerprint_path(directory, table.name), "wt", encoding="utf-8") as out:
            for fp in stream:
                key_text = encode_key(fp.key)
                rollup.update(key_text, fp.checksum)
                out.write(f"{key_text}\t{fp.checksum}\n")

        span.set_attribute("rows", rollup.count)

    return AuditedTable(
        entry=ManifestEntry(table.name, rollup.hexdigest(), rollup.count),
        seconds=time.monotonic() - started,
    )


def audit_database(
    gateway: Any,
    tables: Iterable[Table],
    output_dir: Path,
    row_limit: int | None = None,
) -> list[AuditedTable]:
    """
    Audit ``tables`` (already filtered and sorted) into the gateway's audit directory.

    Unusable tables are logged and left out of the manifest.
    """
    directory = audit_directory(output_dir, gateway.label)
    directory.mkdir(parents=True, exist_ok=True)
    if row_limit is not None:
        logger.warning(f"Limiting audit to {row_limit} rows per table")

    audited = []
    with open(directory / MANIFEST_NAME, "w", encoding="utf-8") as manifest:
        for table in tables:
            try:
                result = audit_table(gateway, table, directory, row_limit)
            except SkipTable as e:
                logger.warning(f"Skipping {e.table}: {e.reason}")
                TABLES_SKIPPED.labels(table=e.table).inc()
                continue

            manifest.write(result.entry.to_line())
            manifest.flush()
            audited.append(result)
            logger.info(
                f"{table.name:<48} {result.entry.rollup:>16} {result.entry.row_count:>10} rows "
                f"{result.rows_per_second / 1000:8.3f} krows/sec {result.seconds:7.3f}s"
            )

    logger.info(f"Audited {len(audited)} tables into {directory}")
    return audited
