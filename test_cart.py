"""
test_cart.py — Tests for the register cart and benefit selection.
Run: pytest test_cart.py -v
"""
import pytest

from app.register.cart import Cart, CartError, CartState, BenefitLine
from app.settings.store import (
    Catalog, Product, RegisterSettings, BenefitConfig, AreaBenefit,
)


# ── Fixtures ──────────────────────────────────────────────────────

def make_settings(mode='single', double_dispatch=False):
    catalog = Catalog([
        Product('normalCheki', 'ノーマルチェキ', 1000, 1),
        Product('groupCheki',  '囲みチェキ',     3000, 2),
        Product('sugoroku',    'すごろく',        500, 3),
    ])
    benefits = BenefitConfig(
        mode=mode,
        single_benefit='スゴロク1回無料',
        area1=AreaBenefit('前方', 'スゴロク2回無料'),
        area2=AreaBenefit('後方', 'スゴロク1回無料'),
        double_dispatch_enabled=double_dispatch,
        double_dispatch_benefit='集合写メ',
    )
    return RegisterSettings(catalog=catalog, benefits=benefits, event_name='定期公演')


@pytest.fixture
def cart():
    return Cart(make_settings())


@pytest.fixture
def multi_cart():
    return Cart(make_settings(mode='multi', double_dispatch=True))


# ── 1. Totals ─────────────────────────────────────────────────────

def test_new_cart_has_zero_line_for_every_product(cart):
    assert cart.line_items == {'normalCheki': 0, 'groupCheki': 0, 'sugoroku': 0}
    assert cart.current_total() == 0


def test_total_is_sum_of_quantity_times_price(cart):
    cart.increment_item('normalCheki', 2)
    cart.increment_item('groupCheki', 1)
    cart.increment_item('sugoroku', 3)
    # 2×1000 + 1×3000 + 3×500
    assert cart.current_total() == 6500
    assert cart.item_count() == 6


def test_benefits_never_change_total(multi_cart):
    multi_cart.increment_item('normalCheki', 2)
    before = multi_cart.current_total()

    multi_cart.select_mobilization('area1')
    multi_cart.toggle_double_dispatch()

    assert multi_cart.current_total() == before == 2000


# ── 2. Quantity floor ─────────────────────────────────────────────

def test_decrement_never_goes_below_zero(cart):
    cart.increment_item('normalCheki', 1)
    for _ in range(5):
        cart.increment_item('normalCheki', -1)
    assert cart.line_items['normalCheki'] == 0


def test_large_negative_delta_clamps_to_zero(cart):
    cart.increment_item('groupCheki', 2)
    assert cart.increment_item('groupCheki', -10) == 0


def test_no_upper_bound_on_quantity(cart):
    cart.increment_item('sugoroku', 500)
    assert cart.line_items['sugoroku'] == 500


def test_unknown_product_rejected(cart):
    with pytest.raises(CartError):
        cart.increment_item('poster', 1)


# ── 3. Mobilization selection ─────────────────────────────────────

def test_single_mode_toggle(cart):
    assert cart.select_mobilization('single') == 'single'
    assert cart.select_mobilization('single') is None


def test_single_mode_rejects_areas(cart):
    with pytest.raises(CartError):
        cart.select_mobilization('area1')


def test_multi_mode_areas_are_mutually_exclusive(multi_cart):
    multi_cart.select_mobilization('area1')
    multi_cart.select_mobilization('area2')
    assert multi_cart.mobilization == 'area2'


def test_multi_mode_reselect_clears(multi_cart):
    multi_cart.select_mobilization('area1')
    multi_cart.select_mobilization('area1')
    assert multi_cart.mobilization is None


def test_none_clears_selection(multi_cart):
    multi_cart.select_mobilization('area2')
    multi_cart.select_mobilization(None)
    assert not multi_cart.has_mobilization()


def test_stale_selection_cleared_when_mode_changes():
    state = CartState(selected_mobilization_area='area1')
    cart = Cart(make_settings(mode='single'), state)
    assert cart.mobilization is None


# ── 4. Double dispatch ────────────────────────────────────────────

def test_double_dispatch_toggles(multi_cart):
    assert multi_cart.toggle_double_dispatch() is True
    assert multi_cart.toggle_double_dispatch() is False


def test_double_dispatch_rejected_when_disabled(cart):
    with pytest.raises(CartError):
        cart.toggle_double_dispatch()


def test_double_dispatch_cleared_when_disabled_in_settings():
    state = CartState(double_dispatch_selected=True)
    cart = Cart(make_settings(double_dispatch=False), state)
    assert cart.double_dispatch is False


# ── 5. Benefit list ───────────────────────────────────────────────

def test_benefit_list_single_mode(cart):
    cart.select_mobilization('single')
    assert cart.benefit_list() == [BenefitLine('動員特典', 'スゴロク1回無料')]
    assert cart.area_label() == '動員'
    assert cart.mobilization_type() == 'single'


def test_benefit_list_multi_mode_with_double_dispatch(multi_cart):
    multi_cart.select_mobilization('area1')
    multi_cart.toggle_double_dispatch()

    assert multi_cart.benefit_list() == [
        BenefitLine('前方特典', 'スゴロク2回無料'),
        BenefitLine('2回し特典', '集合写メ'),
    ]
    assert multi_cart.benefit_description() == 'スゴロク2回無料 + 集合写メ'
    assert multi_cart.area_label() == '前方'
    assert multi_cart.mobilization_type() == 'area1'


def test_double_dispatch_only(multi_cart):
    multi_cart.toggle_double_dispatch()
    assert multi_cart.benefit_description() == '集合写メ'
    assert multi_cart.has_benefit()
    assert not multi_cart.has_mobilization()
    assert multi_cart.mobilization_type() is None


def test_no_benefit(cart):
    assert cart.benefit_list() == []
    assert cart.benefit_description() == ''
    assert cart.area_label() == ''


# ── 6. Reset & session shape ──────────────────────────────────────

def test_reset_clears_everything(multi_cart):
    multi_cart.increment_item('normalCheki', 3)
    multi_cart.select_mobilization('area2')
    multi_cart.toggle_double_dispatch()
    multi_cart.set_customer_name('Taro')

    multi_cart.reset()

    assert all(q == 0 for q in multi_cart.line_items.values())
    assert multi_cart.mobilization is None
    assert multi_cart.double_dispatch is False
    assert multi_cart.customer_name == ''


def test_state_dict_shape(multi_cart):
    multi_cart.increment_item('sugoroku', 2)
    multi_cart.select_mobilization('area1')
    multi_cart.set_customer_name('Hanako')

    restored = Cart(multi_cart.settings, CartState.from_dict(multi_cart.state.to_dict()))
    assert restored.line_items['sugoroku'] == 2
    assert restored.mobilization == 'area1'
    assert restored.customer_name == 'Hanako'


def test_from_dict_drops_negative_and_garbage_quantities():
    state = CartState.from_dict({'items': {'normalCheki': -3, 'groupCheki': 'x'}})
    assert state.line_items == {'normalCheki': 0, 'groupCheki': 0}
