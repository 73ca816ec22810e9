"""
app/settings/models.py
----------------------
Key/value settings rows. `value` holds a JSON document whose schema
depends on the key:
  products  → {"<key>": {"name": str, "price": int, "order": int}, ...}
  register  → {"event_name": str, "mode": "single"|"multi", ...}
"""
import json
from datetime import datetime
from app import db


class AppSetting(db.Model):
    """One named settings document."""
    __tablename__ = 'app_settings'

    key        = db.Column(db.String(50), primary_key=True)
    value      = db.Column(db.Text, nullable=False, default='{}')   # JSON string
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow,
                           onupdate=datetime.utcnow)

    @property
    def value_dict(self) -> dict:
        try:
            parsed = json.loads(self.value or '{}')
        except (ValueError, TypeError):
            return {}
        return parsed if isinstance(parsed, dict) else {}

    @value_dict.setter
    def value_dict(self, value: dict):
        self.value = json.dumps(value, ensure_ascii=False)

    def __repr__(self):
        return f'<AppSetting {self.key!r}>'
