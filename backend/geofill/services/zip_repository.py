from __future__ import annotations

import csv
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Generator, Iterable

from geofill.core.logging import get_logger
from geofill.domain.geometry import haversine_distance
from geofill.domain.location import ZipRecord


_logger = get_logger(__name__)


class ZipRepository:
    """Read-mostly SQLite store of reference zip codes."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        self._ensure_schema()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS zip_codes (
                    zip TEXT PRIMARY KEY,
                    city TEXT NOT NULL,
                    state_code TEXT NOT NULL,
                    iso TEXT NOT NULL,
                    latitude REAL,
                    longitude REAL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_zip_codes_place
                ON zip_codes (iso, state_code, city COLLATE NOCASE)
                """
            )
            conn.commit()

    def upsert_many(self, records: Iterable[ZipRecord]) -> int:
        payload = [
            (
                record.zip.strip(),
                record.city.strip(),
                record.state_code.strip().upper(),
                record.iso.strip().upper(),
                record.latitude,
                record.longitude,
            )
            for record in records
        ]
        if not payload:
            return 0

        with self._lock, self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO zip_codes (
                    zip, city, state_code, iso, latitude, longitude
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(zip) DO UPDATE SET
                    city=excluded.city,
                    state_code=excluded.state_code,
                    iso=excluded.iso,
                    latitude=excluded.latitude,
                    longitude=excluded.longitude
                """,
                payload,
            )
            conn.commit()
        return len(payload)

    def load_csv(self, path: Path, default_iso: str = "US") -> int:
        """Load ``zip,city,state_code[,iso,latitude,longitude]`` rows."""

        records: list[ZipRecord] = []
        with Path(path).open(newline="", encoding="utf-8-sig") as handle:
            for line_number, row in enumerate(csv.DictReader(handle), start=2):
                zip_code = (row.get("zip") or "").strip()
                city = (row.get("city") or "").strip()
                state_code = (row.get("state_code") or "").strip()
                if not zip_code or not city or not state_code:
                    _logger.warning(
                        "Skipping incomplete zip row", path=str(path), line=line_number
                    )
                    continue
                records.append(
                    ZipRecord(
                        zip=zip_code,
                        city=city,
                        state_code=state_code,
                        iso=(row.get("iso") or default_iso).strip() or default_iso,
                        latitude=_parse_float(row.get("latitude")),
                        longitude=_parse_float(row.get("longitude")),
                    )
                )

        loaded = self.upsert_many(records)
        _logger.info("Zip dataset loaded", path=str(path), rows=loaded)
        return loaded

    def count(self) -> int:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM zip_codes").fetchone()
        return int(row["total"])

    def get(self, zip_code: str) -> ZipRecord | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM zip_codes WHERE zip = ?", (zip_code.strip(),)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_record(row)

    def find_by_city(self, city: str, state_code: str, iso: str) -> list[ZipRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM zip_codes
                WHERE iso = ? AND state_code = ? AND city = ? COLLATE NOCASE
                ORDER BY zip ASC
                """,
                (iso.upper(), state_code.upper(), city.strip()),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def find_by_state(self, state_code: str, iso: str) -> list[ZipRecord]:
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM zip_codes
                WHERE iso = ? AND state_code = ?
                ORDER BY zip ASC
                """,
                (iso.upper(), state_code.upper()),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def best_match(
        self,
        city: str | None,
        state_code: str,
        iso: str,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> ZipRecord | None:
        """Pick the zip for a city, falling back to any zip in the state.

        Ties go to the record closest to the given coordinates, or to the
        lowest zip when no coordinates are available.
        """

        candidates: list[ZipRecord] = []
        if city:
            candidates = self.find_by_city(city, state_code, iso)
        if not candidates:
            if city:
                _logger.info(
                    "No exact city zip match",
                    city=city,
                    state_code=state_code,
                    iso=iso,
                )
            candidates = self.find_by_state(state_code, iso)
        return _pick_closest(candidates, latitude, longitude)

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ZipRecord:
        return ZipRecord(
            zip=row["zip"],
            city=row["city"],
            state_code=row["state_code"],
            iso=row["iso"],
            latitude=row["latitude"],
            longitude=row["longitude"],
        )


def _pick_closest(
    candidates: list[ZipRecord],
    latitude: float | None,
    longitude: float | None,
) -> ZipRecord | None:
    if not candidates:
        return None
    if latitude is None or longitude is None:
        return candidates[0]

    located = [
        record
        for record in candidates
        if record.latitude is not None and record.longitude is not None
    ]
    if not located:
        return candidates[0]

    # candidates arrive sorted by zip, so min() keeps the lowest zip on ties
    return min(
        located,
        key=lambda record: haversine_distance(
            latitude,
            longitude,
            record.latitude,  # type: ignore[arg-type]
            record.longitude,  # type: ignore[arg-type]
        ),
    )


def _parse_float(value: str | None) -> float | None:
    if value is None or not value.strip():
        return None
    try:
        return float(value)
    except ValueError:
        return None


_repositories: dict[Path, ZipRepository] = {}
_repositories_lock = Lock()


def get_zip_repository(
    db_path: Path,
    *,
    seed_csv: Path | None = None,
    default_iso: str = "US",
) -> ZipRepository:
    """Return the shared repository for ``db_path``, seeding it when empty."""

    key = Path(db_path).expanduser().resolve()
    with _repositories_lock:
        repository = _repositories.get(key)
        if repository is None:
            repository = ZipRepository(key)
            if seed_csv is not None and repository.count() == 0:
                repository.load_csv(seed_csv, default_iso)
            _repositories[key] = repository
        return repository
