"""
app/reports/aggregator.py
-------------------------
Read-only tallies over one day's ledger.

No writes happen here. The register screen, the report page and both
exports build a DailyReport from the same ledger snapshot.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Tuple

from app.settings.store import RegisterSettings, MODE_SINGLE


GENERAL_LABEL      = '一般'
BENEFIT_ONLY_LABEL = '特典のみ'


@dataclass
class ProductLine:
    """One row of the per-product table."""
    key:      str
    name:     str
    price:    int
    quantity: int

    @property
    def amount(self) -> int:
        return self.price * self.quantity


@dataclass
class DailyReport:
    day:                    date
    event_name:             str
    records:                Tuple = ()
    total_sales:            int = 0
    mobilization_count:     int = 0
    double_dispatch_count:  int = 0
    mobilization_breakdown: Dict[str, int] = field(default_factory=dict)
    item_counts:            Dict[str, int] = field(default_factory=dict)
    product_lines:          List[ProductLine] = field(default_factory=list)
    settings:               RegisterSettings = None

    @property
    def transaction_count(self) -> int:
        return len(self.records)

    @property
    def benefit_records(self) -> list:
        """Records that carried a mobilization or double-dispatch perk."""
        return [r for r in self.records if r.is_mobilization or r.is_double_dispatch]

    def area_count(self, area: str) -> int:
        return self.mobilization_breakdown.get(area, 0)

    def mobilization_label(self, record) -> str:
        """Area label for a mobilization record; '' otherwise."""
        if not record.is_mobilization:
            return ''
        benefits = self.settings.benefits
        if record.mobilization_type == 'area1':
            return benefits.area1.label
        if record.mobilization_type == 'area2':
            return benefits.area2.label
        return GENERAL_LABEL

    def classification(self, record) -> str:
        """Label used in the benefit list of the report view."""
        return self.mobilization_label(record) or BENEFIT_ONLY_LABEL


def total_sales(records) -> int:
    return sum(r.total_amount for r in records)


def mobilization_count(records) -> int:
    return sum(1 for r in records if r.is_mobilization)


def double_dispatch_count(records) -> int:
    return sum(1 for r in records if r.is_double_dispatch)


def mobilization_breakdown(records) -> Dict[str, int]:
    """Mobilization records per type; untyped records count as 'single'."""
    breakdown: Dict[str, int] = {}
    for r in records:
        if r.is_mobilization:
            key = r.mobilization_type or MODE_SINGLE
            breakdown[key] = breakdown.get(key, 0) + 1
    return breakdown


def item_counts(records, catalog) -> Dict[str, int]:
    """Units sold per catalog product (catalog order)."""
    return {
        key: sum(r.quantity(key) for r in records)
        for key in catalog.keys()
    }


def build_report(ledger, settings: RegisterSettings) -> DailyReport:
    records = tuple(ledger)
    counts  = item_counts(records, settings.catalog)

    return DailyReport(
        day=ledger.day,
        event_name=settings.event_name,
        records=records,
        total_sales=total_sales(records),
        mobilization_count=mobilization_count(records),
        double_dispatch_count=double_dispatch_count(records),
        mobilization_breakdown=mobilization_breakdown(records),
        item_counts=counts,
        product_lines=[
            ProductLine(key=p.key, name=p.name, price=p.price, quantity=counts[p.key])
            for p in settings.catalog
        ],
        settings=settings,
    )
