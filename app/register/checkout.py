"""
app/register/checkout.py
------------------------
Checkout state machine, change calculation and the SaleRecord snapshot.

    IDLE ──proceed()──► VALIDATING ──► AWAITING_PAYMENT ──confirm()──► CONFIRMED
      ▲                     │                   │
      └──── rejected ◄──────┘                   └──cancel()──► CANCELLED

CONFIRMED and CANCELLED end one transaction; the next proceed() starts
another. Validation failures raise CheckoutError with the message shown
to the operator and leave the cart untouched.

Nothing here touches Flask directly except the session helpers at the
bottom; the ledger is passed in.
"""
from __future__ import annotations
import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from flask import session


CHECKOUT_KEY = 'checkout'

QUICK_TENDERS = (1000, 5000, 10000)

EMPTY_CART_MESSAGE    = '商品を選択するか、動員・特典を選択してください。'
NAME_REQUIRED_MESSAGE = '動員または特典適用の場合は名前を入力してください。'
INSUFFICIENT_MESSAGE  = 'お預かり金額が不足しています。'
NOT_READY_MESSAGE     = '会計が開始されていません。'


class CheckoutState(enum.Enum):
    IDLE             = 'idle'
    VALIDATING       = 'validating'
    AWAITING_PAYMENT = 'awaiting_payment'
    CONFIRMED        = 'confirmed'
    CANCELLED        = 'cancelled'


class CheckoutError(ValueError):
    """The transaction cannot move forward; message is operator-facing."""


class InsufficientPaymentError(CheckoutError):
    """Tendered amount is below the total."""


# ── Sale record ───────────────────────────────────────────────────

@dataclass(frozen=True)
class SaleRecord:
    """
    One confirmed transaction. Created once at confirmation and never
    modified; `items` is a read-only snapshot of the cart lines.
    """
    id:                      str
    timestamp:               str            # ISO-8601 with UTC offset
    is_mobilization:         bool
    mobilization_type:       Optional[str]  # 'single' | 'area1' | 'area2' | None
    customer_name:           str
    benefit:                 str            # perks joined with " + "
    is_double_dispatch:      bool
    double_dispatch_benefit: str
    items:                   Mapping[str, int] = field(default_factory=dict)
    total_amount:            int = 0

    def __post_init__(self):
        object.__setattr__(self, 'items', MappingProxyType(dict(self.items)))

    @property
    def created_at(self) -> datetime:
        return datetime.fromisoformat(self.timestamp)

    def quantity(self, key: str) -> int:
        return self.items.get(key, 0)

    def to_dict(self) -> dict:
        return {
            'id':                      self.id,
            'timestamp':               self.timestamp,
            'is_mobilization':         self.is_mobilization,
            'mobilization_type':       self.mobilization_type,
            'customer_name':           self.customer_name,
            'benefit':                 self.benefit,
            'is_double_dispatch':      self.is_double_dispatch,
            'double_dispatch_benefit': self.double_dispatch_benefit,
            'items':                   dict(self.items),
            'total_amount':            self.total_amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SaleRecord':
        return cls(
            id=str(data['id']),
            timestamp=str(data['timestamp']),
            is_mobilization=bool(data.get('is_mobilization', False)),
            mobilization_type=data.get('mobilization_type'),
            customer_name=data.get('customer_name') or '',
            benefit=data.get('benefit') or '',
            is_double_dispatch=bool(data.get('is_double_dispatch', False)),
            double_dispatch_benefit=data.get('double_dispatch_benefit') or '',
            items={k: int(v) for k, v in (data.get('items') or {}).items()},
            total_amount=int(data.get('total_amount', 0)),
        )


def build_sale_record(cart, now: datetime, record_id: str) -> SaleRecord:
    """Snapshot the cart. The customer name is kept only when a perk applies."""
    double_dispatch = cart.double_dispatch
    return SaleRecord(
        id=record_id,
        timestamp=now.isoformat(),
        is_mobilization=cart.has_mobilization(),
        mobilization_type=cart.mobilization_type(),
        customer_name=cart.customer_name if cart.has_benefit() else '',
        benefit=cart.benefit_description(),
        is_double_dispatch=double_dispatch,
        double_dispatch_benefit=cart.benefits.double_dispatch_benefit if double_dispatch else '',
        items=dict(cart.line_items),
        total_amount=cart.current_total(),
    )


# ── Payment arithmetic ────────────────────────────────────────────

def compute_change(total: int, tendered: int) -> int:
    """Change due; negative when the tender falls short."""
    return tendered - total


def is_sufficient(total: int, tendered: Optional[int]) -> bool:
    return tendered is not None and tendered >= total


@dataclass(frozen=True)
class PaymentQuote:
    """What the payment screen shows."""
    total:      int
    tendered:   Optional[int]
    change:     int
    sufficient: bool

    @property
    def shortfall(self) -> int:
        if self.tendered is None or self.sufficient:
            return 0
        return self.total - self.tendered


def validate_cart(cart) -> None:
    """Raise CheckoutError if the cart cannot go to payment."""
    if cart.current_total() == 0 and not cart.has_benefit():
        raise CheckoutError(EMPTY_CART_MESSAGE)
    if cart.has_benefit() and not cart.customer_name.strip():
        raise CheckoutError(NAME_REQUIRED_MESSAGE)


# ── Engine ────────────────────────────────────────────────────────

class CheckoutEngine:
    """
    Drives one cart through payment into a ledger.

    `clock` returns the timezone-aware confirmation time and
    `id_factory` the record id; both are injectable for tests.
    """

    def __init__(self, cart, ledger, state: CheckoutState = CheckoutState.IDLE,
                 tendered: Optional[int] = None,
                 clock: Callable[[], datetime] = None,
                 id_factory: Callable[[], str] = None):
        self.cart       = cart
        self.ledger     = ledger
        self.state      = state
        self.tendered   = tendered
        self.clock      = clock or (lambda: datetime.now().astimezone())
        self.id_factory = id_factory or (lambda: str(uuid.uuid4()))

    # ── Transitions ───────────────────────────────────────────────

    def proceed(self) -> CheckoutState:
        """
        Validate the cart and open payment with an empty tender.

        With payment already open the cart is checked again and the
        tendered amount is kept.
        """
        reopening = self.state == CheckoutState.AWAITING_PAYMENT
        self._validate()

        if not reopening:
            self.tendered = None
        self.state = CheckoutState.AWAITING_PAYMENT
        return self.state

    def tender(self, amount: Optional[int]) -> PaymentQuote:
        """Record the amount handed over. None clears it."""
        self._require_payment()
        if amount is not None:
            amount = int(amount)
            if amount < 0:
                raise CheckoutError('お預かり金額は0以上で入力してください。')
        self.tendered = amount
        return self.quote()

    def tender_exact(self) -> PaymentQuote:
        return self.tender(self.cart.current_total())

    def confirm(self) -> SaleRecord:
        """
        Write the sale to the ledger and empty the cart.

        If the ledger write fails its error propagates, the state stays
        AWAITING_PAYMENT and the cart is kept for another attempt.
        """
        self._require_payment()
        self._validate()
        if not self.is_sufficient():
            raise InsufficientPaymentError(INSUFFICIENT_MESSAGE)

        record = build_sale_record(self.cart, self.clock(), self.id_factory())
        self.ledger.append(record)

        self.cart.reset()
        self.tendered = None
        self.state    = CheckoutState.CONFIRMED
        return record

    def cancel(self) -> None:
        """Close payment; cart and ledger are untouched."""
        self._require_payment()
        self.tendered = None
        self.state    = CheckoutState.CANCELLED

    # ── Arithmetic ────────────────────────────────────────────────

    def compute_change(self, tendered: Optional[int] = None) -> int:
        amount = self.tendered if tendered is None else tendered
        return compute_change(self.cart.current_total(), amount or 0)

    def is_sufficient(self, tendered: Optional[int] = None) -> bool:
        amount = self.tendered if tendered is None else tendered
        return is_sufficient(self.cart.current_total(), amount)

    def quote(self) -> PaymentQuote:
        total = self.cart.current_total()
        return PaymentQuote(
            total=total,
            tendered=self.tendered,
            change=compute_change(total, self.tendered or 0),
            sufficient=is_sufficient(total, self.tendered),
        )

    def _validate(self) -> None:
        """Run validate_cart; a rejected cart closes payment."""
        self.state = CheckoutState.VALIDATING
        try:
            validate_cart(self.cart)
        except CheckoutError:
            self.state    = CheckoutState.IDLE
            self.tendered = None
            raise
        self.state = CheckoutState.AWAITING_PAYMENT

    def _require_payment(self) -> None:
        if self.state != CheckoutState.AWAITING_PAYMENT:
            raise CheckoutError(NOT_READY_MESSAGE)


# ── Session storage ───────────────────────────────────────────────

def load_checkout(cart, ledger, **kwargs) -> CheckoutEngine:
    """Rebuild the engine from the session."""
    data = session.get(CHECKOUT_KEY, {})
    try:
        state = CheckoutState(data.get('state', CheckoutState.IDLE.value))
    except ValueError:
        state = CheckoutState.IDLE
    return CheckoutEngine(cart, ledger, state=state, tendered=data.get('tendered'), **kwargs)


def save_checkout(engine: CheckoutEngine) -> None:
    if engine.state == CheckoutState.AWAITING_PAYMENT:
        session[CHECKOUT_KEY] = {'state': engine.state.value, 'tendered': engine.tendered}
    else:
        # Terminal states end the transaction
        session.pop(CHECKOUT_KEY, None)
    session.modified = True
