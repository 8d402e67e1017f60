"""
Credential fixture loading.

The standard workload logs every virtual user in with its own account,
taken from a CSV file whose first row names the columns::

    username,password
    croc_user_01,superCroc2019
    ...

The file is parsed once per process, before any worker starts, and the
resulting :class:`FixtureSet` is shared read-only by every worker.  Rows
are exposed as ``MappingProxyType`` views so no worker can mutate a row
another worker is reading.

Every problem with the file (missing, unreadable, ragged rows, missing
columns) is a :class:`~crocload.errors.FixtureError`: the run cannot start
without valid credentials.
"""

from __future__ import annotations

import csv
import logging
import threading
from collections.abc import Iterator, Sequence
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from .errors import FixtureError

if TYPE_CHECKING:
    from .context import WorkerIdentity

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_COLUMNS = ("username", "password")

FixtureRow = Mapping[str, str]

_cache: dict[Path, "FixtureSet"] = {}
_cache_lock = threading.Lock()


class FixtureSet(Sequence):
    """
    Immutable, indexable sequence of fixture rows.

    Attributes:
        source: Path the rows were read from.
        columns: Header names in file order.
    """

    def __init__(self, source: Path, columns: tuple[str, ...], rows: Sequence[dict[str, str]]):
        self.source = source
        self.columns = columns
        self._rows: tuple[FixtureRow, ...] = tuple(MappingProxyType(dict(row)) for row in rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __getitem__(self, index):  # type: ignore[override]
        return self._rows[index]

    def __iter__(self) -> Iterator[FixtureRow]:
        return iter(self._rows)

    def row_for(self, identity: WorkerIdentity) -> FixtureRow:
        """
        Return the row assigned to a worker (``id_in_scenario - 1``).

        Raises:
            FixtureError: When the worker's slot has no matching row.  This
                is a misconfiguration (more workers than credentials), not
                something an iteration can recover from.
        """
        index = identity.id_in_scenario - 1
        if not 0 <= index < len(self._rows):
            raise FixtureError(
                f"No fixture row for worker {identity.id_in_scenario} of scenario "
                f"'{identity.scenario}': '{self.source}' only has {len(self._rows)} rows"
            )
        return self._rows[index]

    def __repr__(self) -> str:
        return f"<FixtureSet {self.source.name}: {len(self)} rows>"


def _parse(path: Path, required_columns: Sequence[str]) -> FixtureSet:
    """Parse *path* into a :class:`FixtureSet`, validating shape as it goes."""
    try:
        with path.open("r", encoding="utf-8", newline="") as handle:
            reader = csv.reader(handle)
            header = next(reader, None)
            if not header or not any(cell.strip() for cell in header):
                raise FixtureError(f"Fixture '{path}' has no header row")

            columns = tuple(cell.strip() for cell in header)
            missing = [column for column in required_columns if column not in columns]
            if missing:
                raise FixtureError(f"Fixture '{path}' is missing column(s): {missing}")

            rows = []
            for record in reader:
                if not record or all(not cell.strip() for cell in record):
                    continue
                if len(record) != len(columns):
                    raise FixtureError(
                        f"Fixture '{path}' line {reader.line_num}: expected "
                        f"{len(columns)} columns, got {len(record)}"
                    )
                rows.append(dict(zip(columns, record)))
    except OSError as exc:
        raise FixtureError(f"Unable to read fixture '{path}': {exc}") from exc
    except csv.Error as exc:
        raise FixtureError(f"Fixture '{path}' is not valid CSV: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise FixtureError(f"Fixture '{path}' is not valid UTF-8: {exc}") from exc

    return FixtureSet(path, columns, rows)


def load_fixture(
    path: str | Path,
    required_columns: Sequence[str] = DEFAULT_REQUIRED_COLUMNS,
) -> FixtureSet:
    """
    Load a credential fixture, reusing the cached copy for the same file.

    Args:
        path: Location of the CSV file.
        required_columns: Header names that must be present.

    Returns:
        The shared :class:`FixtureSet` for that file.

    Raises:
        FixtureError: If the file is missing, unreadable or malformed.
    """
    resolved = Path(path).resolve()
    with _cache_lock:
        cached = _cache.get(resolved)
        if cached is not None:
            missing = [column for column in required_columns if column not in cached.columns]
            if missing:
                raise FixtureError(f"Fixture '{resolved}' is missing column(s): {missing}")
            return cached

        fixture = _parse(resolved, required_columns)
        _cache[resolved] = fixture

    logger.info("Loaded %d fixture rows from %s", len(fixture), resolved)
    return fixture


def clear_fixture_cache() -> None:
    """Forget every cached fixture (the next load re-reads the file)."""
    with _cache_lock:
        _cache.clear()
