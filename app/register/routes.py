from flask import (
    render_template, redirect, url_for,
    request, flash, current_app
)

from app.register import register
from app.register.cart import CartError, get_cart, save_cart, clear_cart
from app.register.checkout import (
    CheckoutError, CheckoutState, InsufficientPaymentError, QUICK_TENDERS,
    load_checkout, save_checkout,
)
from app.register.ledger import Ledger, LedgerPersistenceError, register_now
from app.reports.aggregator import build_report
from app.settings.store import load_settings


# ── Helpers ───────────────────────────────────────────────────────

def _load():
    """Settings, today's ledger, session cart and checkout engine."""
    settings = load_settings()
    ledger   = Ledger.load_for_today()
    cart     = get_cart(settings)
    engine   = load_checkout(cart, ledger, clock=register_now)
    return settings, ledger, cart, engine


def _parse_amount(raw: str):
    """Tendered amount from a form field; blank means not entered yet."""
    raw = (raw or '').strip().replace(',', '')
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise CheckoutError('金額は整数で入力してください。') from None


def _cart_response(cart, error=None):
    """
    HTMX requests get the cart partial swapped in-place; plain form posts
    are redirected back to the register with the error flashed.
    """
    if request.headers.get('HX-Request'):
        return render_template('register/_cart.html', cart=cart, error=error)
    if error:
        flash(error, 'error')
    return redirect(url_for('register.index'))


# ── REGISTER SCREEN ───────────────────────────────────────────────

@register.route('/')
def index():
    """Catalog buttons, live cart, benefit toggles and today's history."""
    settings, ledger, cart, _ = _load()
    return render_template(
        'register/index.html',
        title='物販レジ',
        settings=settings,
        cart=cart,
        ledger=ledger,
        report=build_report(ledger, settings),
    )


# ── CART EDITS (HTMX) ─────────────────────────────────────────────

@register.route('/item', methods=['POST'])
def item():
    """Change one product's quantity by `delta` (default +1)."""
    _, _, cart, _ = _load()
    key   = request.form.get('key', '').strip()
    delta = request.form.get('delta', 1, type=int)
    error = None

    try:
        cart.increment_item(key, delta)
    except CartError as exc:
        error = str(exc)
    else:
        save_cart(cart)

    return _cart_response(cart, error)


@register.route('/mobilization', methods=['POST'])
def mobilization():
    """Toggle a mobilization area; an empty `area` clears the choice."""
    _, _, cart, _ = _load()
    area  = request.form.get('area', '').strip() or None
    error = None

    try:
        cart.select_mobilization(area)
    except CartError as exc:
        error = str(exc)
    else:
        save_cart(cart)

    return _cart_response(cart, error)


@register.route('/double-dispatch', methods=['POST'])
def double_dispatch():
    _, _, cart, _ = _load()
    error = None

    try:
        cart.toggle_double_dispatch()
    except CartError as exc:
        error = str(exc)
    else:
        save_cart(cart)

    return _cart_response(cart, error)


@register.route('/customer', methods=['POST'])
def customer():
    _, _, cart, _ = _load()
    cart.set_customer_name(request.form.get('name', ''))
    save_cart(cart)
    return _cart_response(cart)


# ── CHECKOUT ──────────────────────────────────────────────────────

@register.route('/checkout', methods=['POST'])
def proceed():
    """Validate the cart and open the payment screen."""
    _, _, cart, engine = _load()

    # The name field is submitted with the checkout button
    if 'customer_name' in request.form:
        cart.set_customer_name(request.form['customer_name'])
        save_cart(cart)

    try:
        engine.proceed()
    except CheckoutError as exc:
        current_app.logger.info(f"Checkout rejected: {exc}")
        flash(str(exc), 'error')
        save_checkout(engine)
        return redirect(url_for('register.index'))

    save_checkout(engine)
    return redirect(url_for('register.payment'))


@register.route('/checkout', methods=['GET'])
def payment():
    """Tendered amount entry with live change calculation."""
    settings, _, cart, engine = _load()
    if engine.state != CheckoutState.AWAITING_PAYMENT:
        return redirect(url_for('register.index'))

    template = 'register/_payment.html' if request.headers.get('HX-Request') else 'register/checkout.html'
    return render_template(
        template,
        title='お会計',
        settings=settings,
        cart=cart,
        quote=engine.quote(),
        quick_tenders=QUICK_TENDERS,
    )


@register.route('/checkout/tender', methods=['POST'])
def tender():
    """Set the tendered amount from the keypad, a preset or 'exact'."""
    _, _, _, engine = _load()
    if engine.state != CheckoutState.AWAITING_PAYMENT:
        return redirect(url_for('register.index'))

    try:
        if request.form.get('preset') == 'exact':
            engine.tender_exact()
        else:
            engine.tender(_parse_amount(request.form.get('amount', '')))
    except CheckoutError as exc:
        flash(str(exc), 'error')

    save_checkout(engine)
    return redirect(url_for('register.payment'))


@register.route('/checkout/confirm', methods=['POST'])
def confirm():
    """
    Finalise the sale:
      1. Check the tender covers the total
      2. Snapshot the cart into a SaleRecord
      3. Prepend it to today's ledger and persist the day
      4. Reset the cart
    """
    _, ledger, _, engine = _load()

    # Amount may arrive with the confirm button
    raw = request.form.get('amount', '').strip()
    if raw and engine.state == CheckoutState.AWAITING_PAYMENT:
        try:
            engine.tender(_parse_amount(raw))
        except CheckoutError as exc:
            flash(str(exc), 'error')
            return redirect(url_for('register.payment'))

    quote = engine.quote()
    try:
        record = engine.confirm()
    except InsufficientPaymentError as exc:
        flash(str(exc), 'error')
        save_checkout(engine)
        return redirect(url_for('register.payment'))
    except LedgerPersistenceError as exc:
        # Ledger rolled back; cart and payment screen stay as they were
        flash(str(exc), 'error')
        save_checkout(engine)
        return redirect(url_for('register.payment'))
    except CheckoutError as exc:
        flash(str(exc), 'error')
        save_checkout(engine)
        return redirect(url_for('register.index'))

    clear_cart()
    save_checkout(engine)

    current_app.logger.info(
        f"Sale recorded {record.id} in {ledger.key} | Total: ¥{record.total_amount} "
        f"| Mobilization: {record.mobilization_type or '-'} "
        f"| Double dispatch: {record.is_double_dispatch}"
    )
    flash(f'会計を確定しました。お釣り ¥{quote.change:,}', 'success')
    return redirect(url_for('register.index'))


@register.route('/checkout/cancel', methods=['POST'])
def cancel():
    _, _, _, engine = _load()
    if engine.state == CheckoutState.AWAITING_PAYMENT:
        engine.cancel()
        save_checkout(engine)
    return redirect(url_for('register.index'))


# ── HISTORY ───────────────────────────────────────────────────────

@register.route('/records/<record_id>/delete', methods=['POST'])
def delete_record(record_id):
    """Remove one sale from today's ledger. Requires confirm=yes."""
    if request.form.get('confirm') != 'yes':
        flash('削除はキャンセルされました。', 'info')
        return redirect(url_for('register.index'))

    ledger = Ledger.load_for_today()
    try:
        record = ledger.remove(record_id)
    except KeyError:
        flash('記録が見つかりません。', 'error')
    except LedgerPersistenceError as exc:
        flash(str(exc), 'error')
    else:
        current_app.logger.warning(
            f"Sale deleted {record.id} from {ledger.key} | Total: ¥{record.total_amount}"
        )
        flash('記録を削除しました。', 'success')

    return redirect(url_for('register.index'))
