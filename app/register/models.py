from datetime import datetime
from app import db


class DailyLedger(db.Model):
    """
    One row per calendar day: the day's sale records as a JSON array,
    newest first.

    The whole array is rewritten on every append or delete. There is no
    row lock, so two registers writing the same day concurrently would
    overwrite each other (last write wins). The register assumes a
    single writer per day.
    """
    __tablename__ = 'daily_ledgers'

    storage_key = db.Column(db.String(32), primary_key=True)   # e.g. cf_sales_2026-10-19
    day         = db.Column(db.Date, nullable=False, index=True)
    records     = db.Column(db.Text, nullable=False, default='[]')
    updated_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                            onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<DailyLedger {self.storage_key!r}>"
