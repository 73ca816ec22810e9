"""
app/register/cart.py
--------------------
The in-progress transaction and its Flask session storage.

Cart structure stored in Flask session under key 'cart':
{
    "mobilization":    "single" | "area1" | "area2" | null,
    "double_dispatch": bool,
    "customer_name":   str,
    "items":           {"<product_key>": int, ...}
}

Money is whole yen (int). Benefits are perks handed over outside the
till, so they never touch the total.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from flask import session

from app.settings.store import RegisterSettings, MODE_SINGLE, MODE_MULTI


CART_KEY = 'cart'

AREAS = ('area1', 'area2')

MOBILIZATION_LABEL     = '動員'
MOBILIZATION_BENEFIT   = '動員特典'
DOUBLE_DISPATCH_LABEL  = '2回し特典'
BENEFIT_SEPARATOR      = ' + '


class CartError(ValueError):
    """An edit the current settings do not allow."""


@dataclass(frozen=True)
class BenefitLine:
    label:   str
    content: str


@dataclass
class CartState:
    selected_mobilization_area: Optional[str] = None
    double_dispatch_selected:   bool = False
    customer_name:              str = ''
    line_items:                 Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'mobilization':    self.selected_mobilization_area,
            'double_dispatch': self.double_dispatch_selected,
            'customer_name':   self.customer_name,
            'items':           dict(self.line_items),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CartState':
        items = {}
        for key, qty in (data.get('items') or {}).items():
            try:
                items[key] = max(0, int(qty))
            except (TypeError, ValueError):
                items[key] = 0
        return cls(
            selected_mobilization_area=data.get('mobilization'),
            double_dispatch_selected=bool(data.get('double_dispatch', False)),
            customer_name=data.get('customer_name') or '',
            line_items=items,
        )


class Cart:
    """
    CartState bound to the register settings it is priced against.

    Every catalog product has a line (quantity 0 when untouched); lines
    for products no longer in the catalog are dropped. Benefit choices
    the current settings no longer offer are cleared.
    """

    def __init__(self, settings: RegisterSettings, state: CartState = None):
        self.settings = settings
        self.state    = state or CartState()

        catalog = settings.catalog
        self.state.line_items = {
            key: self.state.line_items.get(key, 0) for key in catalog.keys()
        }
        if self.state.selected_mobilization_area not in self._selectable_areas():
            self.state.selected_mobilization_area = None
        if not self.benefits.double_dispatch_enabled:
            self.state.double_dispatch_selected = False

    # ── Settings shortcuts ────────────────────────────────────────

    @property
    def catalog(self):
        return self.settings.catalog

    @property
    def benefits(self):
        return self.settings.benefits

    def _selectable_areas(self):
        if self.benefits.mode == MODE_MULTI:
            return AREAS
        return (MODE_SINGLE,)

    # ── Edits ─────────────────────────────────────────────────────

    def increment_item(self, key: str, delta: int) -> int:
        """Add `delta` (may be negative) to a line, floored at zero."""
        if key not in self.catalog:
            raise CartError(f'Unknown product "{key}".')
        qty = max(0, self.state.line_items.get(key, 0) + int(delta))
        self.state.line_items[key] = qty
        return qty

    def select_mobilization(self, area: Optional[str]) -> Optional[str]:
        """
        Select a mobilization area; selecting the active one clears it.
        In multi mode the two areas replace each other.
        """
        if area is None:
            self.state.selected_mobilization_area = None
            return None
        if area not in self._selectable_areas():
            raise CartError(f'"{area}" is not selectable in {self.benefits.mode} mode.')

        if self.state.selected_mobilization_area == area:
            self.state.selected_mobilization_area = None
        else:
            self.state.selected_mobilization_area = area
        return self.state.selected_mobilization_area

    def toggle_double_dispatch(self) -> bool:
        if not self.benefits.double_dispatch_enabled:
            raise CartError('2回し特典は無効です。')
        self.state.double_dispatch_selected = not self.state.double_dispatch_selected
        return self.state.double_dispatch_selected

    def set_customer_name(self, name: str) -> None:
        self.state.customer_name = name or ''

    def reset(self) -> None:
        self.state.selected_mobilization_area = None
        self.state.double_dispatch_selected   = False
        self.state.customer_name              = ''
        self.state.line_items = {key: 0 for key in self.catalog.keys()}

    # ── Reads ─────────────────────────────────────────────────────

    @property
    def line_items(self) -> Dict[str, int]:
        return self.state.line_items

    @property
    def mobilization(self) -> Optional[str]:
        return self.state.selected_mobilization_area

    @property
    def double_dispatch(self) -> bool:
        return self.state.double_dispatch_selected

    @property
    def customer_name(self) -> str:
        return self.state.customer_name

    def current_total(self) -> int:
        return sum(
            qty * self.catalog.price(key)
            for key, qty in self.state.line_items.items()
        )

    def item_count(self) -> int:
        return sum(self.state.line_items.values())

    def has_mobilization(self) -> bool:
        return self.state.selected_mobilization_area is not None

    def has_benefit(self) -> bool:
        return self.has_mobilization() or self.state.double_dispatch_selected

    def mobilization_type(self) -> Optional[str]:
        """Value stored on the sale record: 'single', 'area1', 'area2' or None."""
        if not self.has_mobilization():
            return None
        if self.benefits.mode == MODE_SINGLE:
            return MODE_SINGLE
        return self.state.selected_mobilization_area

    def area_label(self) -> str:
        if not self.has_mobilization():
            return ''
        if self.benefits.mode == MODE_SINGLE:
            return MOBILIZATION_LABEL
        return self.benefits.area(self.state.selected_mobilization_area).label

    def benefit_list(self) -> List[BenefitLine]:
        """Applicable perks: mobilization first, then double dispatch."""
        lines = []
        if self.has_mobilization():
            if self.benefits.mode == MODE_SINGLE:
                lines.append(BenefitLine(MOBILIZATION_BENEFIT, self.benefits.single_benefit))
            else:
                area = self.benefits.area(self.state.selected_mobilization_area)
                lines.append(BenefitLine(f'{area.label}特典', area.benefit))

        if self.state.double_dispatch_selected:
            lines.append(BenefitLine(DOUBLE_DISPATCH_LABEL, self.benefits.double_dispatch_benefit))

        return lines

    def benefit_description(self) -> str:
        return BENEFIT_SEPARATOR.join(line.content for line in self.benefit_list())


# ── Session storage ───────────────────────────────────────────────

def get_cart(settings: RegisterSettings) -> Cart:
    """Return the session cart (may be empty) priced against `settings`."""
    return Cart(settings, CartState.from_dict(session.get(CART_KEY, {})))


def save_cart(cart: Cart) -> None:
    session[CART_KEY] = cart.state.to_dict()
    session.modified  = True


def clear_cart() -> None:
    """Empty the cart after a completed sale."""
    session.pop(CART_KEY, None)
    session.modified = True
