"""
app/settings/store.py
---------------------
Register configuration: product catalog and benefit rules.

Everything downstream (cart, checkout, reports) receives a
RegisterSettings instance instead of reading the database, so the
core works against any catalog in tests.

Stored documents are merged over DEFAULT_PRODUCTS / DEFAULT_BENEFITS,
so settings saved by an older version pick up newly added fields.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Dict, Iterator, List, Tuple

from flask import current_app

from app import db


MODE_SINGLE = 'single'
MODE_MULTI  = 'multi'
MODES = (MODE_SINGLE, MODE_MULTI)

PRODUCTS_KEY = 'products'
REGISTER_KEY = 'register'


@dataclass(frozen=True)
class Product:
    """One sellable item. Prices are whole yen."""
    key:   str
    name:  str
    price: int
    order: int = 0


class Catalog:
    """Products in display order (by `order`, then key)."""

    def __init__(self, products):
        ordered = sorted(products, key=lambda p: (p.order, p.key))
        self._products: Dict[str, Product] = {p.key: p for p in ordered}

    def __getitem__(self, key: str) -> Product:
        return self._products[key]

    def __contains__(self, key) -> bool:
        return key in self._products

    def __iter__(self) -> Iterator[Product]:
        return iter(self._products.values())

    def __len__(self) -> int:
        return len(self._products)

    def keys(self) -> List[str]:
        return list(self._products)

    def price(self, key: str) -> int:
        return self._products[key].price

    def to_dict(self) -> dict:
        return {
            p.key: {'name': p.name, 'price': p.price, 'order': p.order}
            for p in self
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Catalog':
        return cls(
            Product(key=k, name=v['name'], price=int(v['price']), order=int(v.get('order', 0)))
            for k, v in data.items()
        )

    def __eq__(self, other):
        return isinstance(other, Catalog) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f'<Catalog {self.keys()}>'


@dataclass(frozen=True)
class AreaBenefit:
    label:   str
    benefit: str


@dataclass(frozen=True)
class BenefitConfig:
    """
    Operator-defined perks. Benefit texts are free-form strings and are
    never interpreted; they only travel to the screen and the ledger.
    """
    mode:                    str = MODE_SINGLE
    single_benefit:          str = 'スゴロク1回無料'
    area1:                   AreaBenefit = AreaBenefit('前方', 'スゴロク2回無料')
    area2:                   AreaBenefit = AreaBenefit('後方', 'スゴロク1回無料')
    double_dispatch_enabled: bool = False
    double_dispatch_benefit: str = '集合写メ'

    def area(self, name: str) -> AreaBenefit:
        if name == 'area1':
            return self.area1
        if name == 'area2':
            return self.area2
        raise KeyError(name)

    def to_dict(self) -> dict:
        return {
            'mode':                    self.mode,
            'single_benefit':          self.single_benefit,
            'area1':                   {'label': self.area1.label, 'benefit': self.area1.benefit},
            'area2':                   {'label': self.area2.label, 'benefit': self.area2.benefit},
            'double_dispatch_enabled': self.double_dispatch_enabled,
            'double_dispatch_benefit': self.double_dispatch_benefit,
        }

    @classmethod
    def from_dict(cls, data: dict, base: 'BenefitConfig' = None) -> 'BenefitConfig':
        base = base or cls()

        def _area(name, current):
            raw = data.get(name) or {}
            return AreaBenefit(
                label=raw.get('label', current.label),
                benefit=raw.get('benefit', current.benefit),
            )

        mode = data.get('mode', base.mode)
        return cls(
            mode=mode if mode in MODES else base.mode,
            single_benefit=data.get('single_benefit', base.single_benefit),
            area1=_area('area1', base.area1),
            area2=_area('area2', base.area2),
            double_dispatch_enabled=bool(data.get('double_dispatch_enabled',
                                                  base.double_dispatch_enabled)),
            double_dispatch_benefit=data.get('double_dispatch_benefit',
                                             base.double_dispatch_benefit),
        )


DEFAULT_PRODUCTS: Tuple[Product, ...] = (
    Product('signedCheki',  'サイン付きチェキ', 2000, 1),
    Product('normalCheki',  'ノーマルチェキ',   1000, 2),
    Product('groupCheki',   '囲みチェキ',       3000, 3),
    Product('personalSign', '私物サイン',       2000, 4),
    Product('sugoroku',     'すごろく',          500, 5),
)

DEFAULT_BENEFITS = BenefitConfig()


@dataclass(frozen=True)
class RegisterSettings:
    """The configuration object injected into cart, checkout and reports."""
    catalog:    Catalog = field(default_factory=lambda: Catalog(DEFAULT_PRODUCTS))
    benefits:   BenefitConfig = DEFAULT_BENEFITS
    event_name: str = ''

    def with_benefits(self, **changes) -> 'RegisterSettings':
        return replace(self, benefits=replace(self.benefits, **changes))


# ── Persistence ───────────────────────────────────────────────────

def _read_section(key: str) -> dict:
    from app.settings.models import AppSetting

    row = db.session.get(AppSetting, key)
    if row is None:
        return {}
    data = row.value_dict
    if not data and row.value not in (None, '', '{}'):
        current_app.logger.error(f"Settings document '{key}' is unreadable; using defaults.")
    return data


def _write_section(key: str, value: dict) -> None:
    from app.settings.models import AppSetting

    row = db.session.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key)
        db.session.add(row)
    row.value_dict = value


def load_settings() -> RegisterSettings:
    """
    Read the stored catalog and register settings, merged over defaults.
    Stored products override default products with the same key and may
    add new ones.
    """
    products = Catalog(DEFAULT_PRODUCTS).to_dict()
    for k, v in _read_section(PRODUCTS_KEY).items():
        if not isinstance(v, dict):
            continue
        merged = dict(products.get(k, {'name': k, 'price': 0, 'order': len(products) + 1}))
        merged.update(v)
        products[k] = merged

    try:
        catalog = Catalog.from_dict(products)
    except (KeyError, ValueError, TypeError) as exc:
        current_app.logger.error(f"Stored catalog is invalid ({exc}); using defaults.")
        catalog = Catalog(DEFAULT_PRODUCTS)

    register = _read_section(REGISTER_KEY)
    return RegisterSettings(
        catalog=catalog,
        benefits=BenefitConfig.from_dict(register, DEFAULT_BENEFITS),
        event_name=str(register.get('event_name', '')),
    )


def save_settings(settings: RegisterSettings) -> None:
    """Persist both sections and commit."""
    register = settings.benefits.to_dict()
    register['event_name'] = settings.event_name

    _write_section(PRODUCTS_KEY, settings.catalog.to_dict())
    _write_section(REGISTER_KEY, register)
    db.session.commit()


def reset_settings() -> RegisterSettings:
    """Restore factory defaults."""
    defaults = RegisterSettings()
    save_settings(defaults)
    return defaults
