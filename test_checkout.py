"""
test_checkout.py — Tests for the checkout state machine and sale records.
Run: pytest test_checkout.py -v
"""
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from app import create_app
from app.register.cart import Cart
from app.register.checkout import (
    CheckoutEngine, CheckoutError, CheckoutState, InsufficientPaymentError,
    SaleRecord, PaymentQuote, compute_change, is_sufficient,
    EMPTY_CART_MESSAGE, NAME_REQUIRED_MESSAGE,
)
from app.register.ledger import Ledger, LedgerPersistenceError
from app.settings.store import (
    Catalog, Product, RegisterSettings, BenefitConfig, AreaBenefit,
)


JST = timezone(timedelta(hours=9))
NOW = datetime(2026, 10, 19, 19, 30, tzinfo=JST)


# ── Fixtures ──────────────────────────────────────────────────────

class MemoryStore:
    """Ledger store kept in a dict; optionally fails on write."""

    def __init__(self, fail=False):
        self.data  = {}
        self.fail  = fail
        self.writes = 0

    def read(self, day):
        return self.data.get(day)

    def write(self, day, payload):
        if self.fail:
            raise OperationalError('UPDATE daily_ledgers', {}, Exception('disk full'))
        self.writes += 1
        self.data[day] = payload


def make_settings(mode='single', double_dispatch=False):
    catalog = Catalog([
        Product('signedCheki', 'サイン付きチェキ', 2000, 1),
        Product('normalCheki', 'ノーマルチェキ',   1000, 2),
        Product('groupCheki',  '囲みチェキ',       3000, 3),
    ])
    benefits = BenefitConfig(
        mode=mode,
        single_benefit='スゴロク1回無料',
        area1=AreaBenefit('前方', 'スゴロク2回無料'),
        area2=AreaBenefit('後方', 'スゴロク1回無料'),
        double_dispatch_enabled=double_dispatch,
        double_dispatch_benefit='集合写メ',
    )
    return RegisterSettings(catalog=catalog, benefits=benefits)


def make_engine(mode='single', double_dispatch=False, store=None):
    cart   = Cart(make_settings(mode, double_dispatch))
    ledger = Ledger(date(2026, 10, 19), store=store or MemoryStore())
    ids    = iter(f'00000000-0000-0000-0000-00000000000{i}' for i in range(1, 10))
    engine = CheckoutEngine(cart, ledger, clock=lambda: NOW, id_factory=lambda: next(ids))
    return engine, cart, ledger


# ── 1. Arithmetic ─────────────────────────────────────────────────

@pytest.mark.parametrize('total, tendered, change, enough', [
    (2000, 2000,     0, True),
    (3000, 2000, -1000, False),
    (3000, 5000,  2000, True),
    (0,       0,     0, True),
])
def test_change_and_sufficiency(total, tendered, change, enough):
    assert compute_change(total, tendered) == change
    assert is_sufficient(total, tendered) is enough


def test_untendered_is_never_sufficient():
    assert is_sufficient(0, None) is False


def test_quote_shortfall():
    quote = PaymentQuote(total=3000, tendered=2000, change=-1000, sufficient=False)
    assert quote.shortfall == 1000


# ── 2. Validation ─────────────────────────────────────────────────

def test_empty_cart_without_benefit_rejected():
    engine, _, _ = make_engine()
    with pytest.raises(CheckoutError) as exc:
        engine.proceed()
    assert str(exc.value) == EMPTY_CART_MESSAGE
    assert engine.state == CheckoutState.IDLE


def test_benefit_without_name_rejected():
    """Scenario C: mobilization selected, blank name → no payment screen."""
    engine, cart, ledger = make_engine()
    cart.select_mobilization('single')
    cart.set_customer_name('   ')

    with pytest.raises(CheckoutError) as exc:
        engine.proceed()

    assert str(exc.value) == NAME_REQUIRED_MESSAGE
    assert engine.state == CheckoutState.IDLE
    assert len(ledger) == 0


def test_double_dispatch_without_name_rejected():
    engine, cart, _ = make_engine(double_dispatch=True)
    cart.increment_item('normalCheki', 1)
    cart.toggle_double_dispatch()
    with pytest.raises(CheckoutError):
        engine.proceed()


def test_proceed_opens_payment_with_empty_tender():
    engine, cart, _ = make_engine()
    cart.increment_item('normalCheki', 1)
    engine.tendered = 9999

    assert engine.proceed() == CheckoutState.AWAITING_PAYMENT
    assert engine.tendered is None
    assert engine.quote().sufficient is False


# ── 3. Scenarios ──────────────────────────────────────────────────

def test_scenario_a_plain_sale():
    engine, cart, ledger = make_engine()
    cart.increment_item('normalCheki', 2)
    assert cart.current_total() == 2000

    engine.proceed()
    engine.tender(2000)
    assert engine.compute_change() == 0

    record = engine.confirm()

    assert len(ledger) == 1
    assert record.total_amount == 2000
    assert record.is_mobilization is False
    assert record.customer_name == ''
    assert engine.state == CheckoutState.CONFIRMED


def test_scenario_b_mobilization_only():
    engine, cart, ledger = make_engine(mode='multi')
    cart.select_mobilization('area1')
    cart.set_customer_name('Taro')

    engine.proceed()
    engine.tender(0)
    record = engine.confirm()

    assert record.total_amount == 0
    assert record.is_mobilization is True
    assert record.mobilization_type == 'area1'
    assert record.benefit == 'スゴロク2回無料'
    assert record.customer_name == 'Taro'
    assert ledger.records[0] == record


def test_scenario_d_insufficient_then_enough():
    engine, cart, ledger = make_engine()
    cart.increment_item('groupCheki', 1)
    engine.proceed()

    quote = engine.tender(2000)
    assert quote.change == -1000
    assert quote.sufficient is False
    with pytest.raises(InsufficientPaymentError):
        engine.confirm()
    assert len(ledger) == 0
    assert engine.state == CheckoutState.AWAITING_PAYMENT

    quote = engine.tender(5000)
    assert quote.change == 2000
    assert quote.sufficient is True
    engine.confirm()
    assert len(ledger) == 1


def test_tender_exact():
    engine, cart, _ = make_engine()
    cart.increment_item('signedCheki', 2)
    engine.proceed()
    quote = engine.tender_exact()
    assert quote.tendered == 4000
    assert quote.change == 0


def test_negative_tender_rejected():
    engine, cart, _ = make_engine()
    cart.increment_item('signedCheki', 1)
    engine.proceed()
    with pytest.raises(CheckoutError):
        engine.tender(-1)


# ── 4. Post-confirm state ─────────────────────────────────────────

def test_cart_reset_after_confirm():
    engine, cart, _ = make_engine(mode='multi', double_dispatch=True)
    cart.increment_item('normalCheki', 1)
    cart.select_mobilization('area2')
    cart.toggle_double_dispatch()
    cart.set_customer_name('Hanako')

    engine.proceed()
    engine.tender(1000)
    record = engine.confirm()

    assert all(q == 0 for q in cart.line_items.values())
    assert cart.mobilization is None
    assert cart.double_dispatch is False
    assert cart.customer_name == ''

    assert record.is_double_dispatch is True
    assert record.double_dispatch_benefit == '集合写メ'
    assert record.benefit == 'スゴロク1回無料 + 集合写メ'
    assert record.mobilization_type == 'area2'


def test_record_items_are_a_snapshot():
    engine, cart, _ = make_engine()
    cart.increment_item('normalCheki', 2)
    engine.proceed()
    engine.tender(2000)
    record = engine.confirm()

    cart.increment_item('normalCheki', 5)
    assert record.items['normalCheki'] == 2
    with pytest.raises(TypeError):
        record.items['normalCheki'] = 9


def test_each_confirm_appends_exactly_one_record():
    engine, cart, ledger = make_engine()
    for n in range(1, 4):
        cart.increment_item('normalCheki', 1)
        engine.proceed()
        engine.tender(1000)
        engine.confirm()
        assert len(ledger) == n
    # newest first
    assert ledger.records[0].id.endswith('3')


def test_record_timestamp_and_id():
    engine, cart, _ = make_engine()
    engine.id_factory = lambda: str(uuid.UUID(int=42))
    cart.increment_item('normalCheki', 1)
    engine.proceed()
    engine.tender(1000)
    record = engine.confirm()

    assert record.timestamp == '2026-10-19T19:30:00+09:00'
    assert record.id == str(uuid.UUID(int=42))


# ── 5. Cancel ─────────────────────────────────────────────────────

def test_cancel_leaves_cart_and_ledger():
    engine, cart, ledger = make_engine()
    cart.increment_item('groupCheki', 2)
    engine.proceed()
    engine.tender(10000)

    engine.cancel()

    assert engine.state == CheckoutState.CANCELLED
    assert cart.line_items['groupCheki'] == 2
    assert len(ledger) == 0


def test_confirm_without_proceed_rejected():
    engine, cart, _ = make_engine()
    cart.increment_item('groupCheki', 1)
    with pytest.raises(CheckoutError):
        engine.confirm()


def test_new_transaction_after_confirm():
    engine, cart, _ = make_engine()
    cart.increment_item('groupCheki', 1)
    engine.proceed()
    engine.tender(3000)
    engine.confirm()

    cart.increment_item('normalCheki', 1)
    assert engine.proceed() == CheckoutState.AWAITING_PAYMENT


# ── 6. Cart edits during payment ──────────────────────────────────

def test_clearing_name_during_payment_blocks_confirm():
    engine, cart, ledger = make_engine()
    cart.select_mobilization('single')
    cart.set_customer_name('Taro')
    engine.proceed()
    engine.tender(0)

    cart.set_customer_name('')

    with pytest.raises(CheckoutError) as exc:
        engine.confirm()
    assert str(exc.value) == NAME_REQUIRED_MESSAGE
    assert engine.state == CheckoutState.IDLE
    assert engine.tendered is None
    assert len(ledger) == 0


def test_emptying_cart_during_payment_blocks_confirm():
    engine, cart, ledger = make_engine()
    cart.increment_item('normalCheki', 1)
    engine.proceed()
    engine.tender(1000)

    cart.increment_item('normalCheki', -1)

    with pytest.raises(CheckoutError) as exc:
        engine.confirm()
    assert str(exc.value) == EMPTY_CART_MESSAGE
    assert engine.state == CheckoutState.IDLE
    assert len(ledger) == 0


def test_proceed_revalidates_open_payment():
    engine, cart, _ = make_engine()
    cart.increment_item('normalCheki', 1)
    engine.proceed()
    engine.tender(5000)

    # still valid: tendered amount survives
    assert engine.proceed() == CheckoutState.AWAITING_PAYMENT
    assert engine.tendered == 5000

    cart.increment_item('normalCheki', -1)
    with pytest.raises(CheckoutError):
        engine.proceed()
    assert engine.state == CheckoutState.IDLE


# ── 7. Persistence failure ────────────────────────────────────────

def test_failed_write_keeps_cart_and_rolls_back_ledger():
    app = create_app('testing')
    with app.app_context():
        store = MemoryStore(fail=True)
        engine, cart, ledger = make_engine(store=store)
        cart.increment_item('normalCheki', 1)
        engine.proceed()
        engine.tender(1000)

        with pytest.raises(LedgerPersistenceError):
            engine.confirm()

        assert len(ledger) == 0
        assert cart.line_items['normalCheki'] == 1
        assert engine.state == CheckoutState.AWAITING_PAYMENT

        # storage recovers; the same payment can be confirmed
        store.fail = False
        engine.confirm()
        assert len(ledger) == 1
        assert store.writes == 1


# ── 8. Record serialisation ───────────────────────────────────────

def test_record_from_dict_defaults():
    record = SaleRecord.from_dict({
        'id': 'abc', 'timestamp': '2026-10-19T10:00:00+09:00',
        'items': {'normalCheki': '2'}, 'total_amount': 2000,
    })
    assert record.is_mobilization is False
    assert record.mobilization_type is None
    assert record.quantity('normalCheki') == 2
    assert record.quantity('groupCheki') == 0
    assert record.created_at.hour == 10
