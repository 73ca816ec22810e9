"""
app/register/ledger.py
----------------------
The day-partitioned sale ledger.

Storage layout
──────────────
One DailyLedger row per calendar day, keyed "cf_sales_<YYYY-MM-DD>".
The value is the JSON array of that day's SaleRecords, newest first.
Every append or removal re-serialises the full list.

Records are write-once: they can be appended and deleted, never edited.

Write failures
──────────────
If persisting fails, the in-memory list is restored to the last stored
copy and LedgerPersistenceError is raised. Memory and storage never
disagree, and the caller decides what to tell the operator.
"""
from __future__ import annotations
import json
from datetime import date, datetime
from typing import Iterator, List, Optional
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.register.checkout import SaleRecord


STORAGE_PREFIX = 'cf_sales_'


class LedgerPersistenceError(RuntimeError):
    """The ledger could not be read from or written to storage."""


def storage_key(day: date) -> str:
    return f'{STORAGE_PREFIX}{day.isoformat()}'


def register_timezone() -> ZoneInfo:
    return ZoneInfo(current_app.config.get('REGISTER_TIMEZONE', 'Asia/Tokyo'))


def register_now() -> datetime:
    """Timezone-aware 'now' in the register's timezone."""
    return datetime.now(register_timezone())


def register_today() -> date:
    return register_now().date()


class LedgerStore:
    """Durable storage: one DailyLedger row per day."""

    def read(self, day: date) -> Optional[list]:
        from app.register.models import DailyLedger

        row = db.session.get(DailyLedger, storage_key(day))
        if row is None:
            return None
        try:
            payload = json.loads(row.records or '[]')
        except ValueError as exc:
            raise LedgerPersistenceError(f'Ledger {row.storage_key} is corrupt: {exc}') from exc
        if not isinstance(payload, list):
            raise LedgerPersistenceError(f'Ledger {row.storage_key} is not a list.')
        return payload

    def write(self, day: date, payload: list) -> None:
        from app.register.models import DailyLedger

        key = storage_key(day)
        row = db.session.get(DailyLedger, key)
        if row is None:
            row = DailyLedger(storage_key=key, day=day)
            db.session.add(row)
        row.records = json.dumps(payload, ensure_ascii=False)
        db.session.commit()

    def days(self) -> List[date]:
        """Days that have a stored ledger, newest first."""
        from app.register.models import DailyLedger

        rows = db.session.query(DailyLedger.day).order_by(DailyLedger.day.desc()).all()
        return [r.day for r in rows]


class Ledger:
    """One day's finalised sales, newest first."""

    def __init__(self, day: date, records=(), store: LedgerStore = None):
        self.day      = day
        self.store    = store or LedgerStore()
        self._records: List[SaleRecord] = list(records)

    # ── Loading ───────────────────────────────────────────────────

    @classmethod
    def load_for_day(cls, day: date, store: LedgerStore = None) -> 'Ledger':
        """A missing row is an empty ledger, not an error."""
        store   = store or LedgerStore()
        payload = store.read(day) or []
        try:
            records = [SaleRecord.from_dict(item) for item in payload]
        except (KeyError, TypeError, ValueError) as exc:
            raise LedgerPersistenceError(f'Ledger {storage_key(day)} has a bad record: {exc}') from exc
        return cls(day, records, store)

    @classmethod
    def load_for_today(cls, store: LedgerStore = None) -> 'Ledger':
        return cls.load_for_day(register_today(), store)

    # ── Reads ─────────────────────────────────────────────────────

    @property
    def key(self) -> str:
        return storage_key(self.day)

    @property
    def records(self) -> tuple:
        return tuple(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[SaleRecord]:
        return iter(tuple(self._records))

    def get(self, record_id: str) -> Optional[SaleRecord]:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    # ── Writes ────────────────────────────────────────────────────

    def append(self, record: SaleRecord) -> None:
        """Prepend `record` and persist the whole day."""
        previous = list(self._records)
        self._records.insert(0, record)
        self._persist(previous)

    def remove(self, record_id: str) -> SaleRecord:
        """Delete one record and persist. Raises KeyError for an unknown id."""
        record = self.get(record_id)
        if record is None:
            raise KeyError(record_id)

        previous = list(self._records)
        self._records = [r for r in self._records if r.id != record_id]
        self._persist(previous)
        return record

    def _persist(self, previous: List[SaleRecord]) -> None:
        try:
            self.store.write(self.day, [r.to_dict() for r in self._records])
        except SQLAlchemyError as exc:
            db.session.rollback()
            self._records = previous
            current_app.logger.error(f"Ledger write failed for {self.key}: {exc}")
            raise LedgerPersistenceError('売上記録の保存に失敗しました。') from exc

    def __repr__(self):
        return f'<Ledger {self.key} records={len(self._records)}>'
