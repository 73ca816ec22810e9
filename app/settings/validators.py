"""
app/settings/validators.py
--------------------------
Pure-Python validation for the settings form.
Returns a dict of field -> error_message.
An empty dict means all fields are valid.
"""
from app.settings.store import (
    AreaBenefit, BenefitConfig, Catalog, Product, RegisterSettings, MODES,
)

TRUTHY = ('1', 'true', 'on', 'yes')


def validate_settings_form(form_data, catalog: Catalog) -> dict:
    """
    Validate raw form data for the settings screen.

    Product fields are named `product_<key>_name` / `product_<key>_price`
    for every key already in `catalog`.
    """
    errors = {}

    # ── mode ──────────────────────────────────────────────────────
    mode = form_data.get('mode', '').strip()
    if mode not in MODES:
        errors['mode'] = '動員タイプを選択してください。'

    # ── area labels ───────────────────────────────────────────────
    if mode == 'multi':
        for area in ('area1', 'area2'):
            if not form_data.get(f'{area}_label', '').strip():
                errors[f'{area}_label'] = '表示ラベルを入力してください。'

    # ── event name ────────────────────────────────────────────────
    if len(form_data.get('event_name', '').strip()) > 200:
        errors['event_name'] = 'イベント名は200文字以内で入力してください。'

    # ── products ──────────────────────────────────────────────────
    for product in catalog:
        name_field  = f'product_{product.key}_name'
        price_field = f'product_{product.key}_price'

        if name_field in form_data and not form_data.get(name_field, '').strip():
            errors[name_field] = '商品名を入力してください。'

        price_raw = form_data.get(price_field, str(product.price)).strip()
        try:
            if int(price_raw) < 0:
                errors[price_field] = '価格は0以上で入力してください。'
        except ValueError:
            errors[price_field] = '価格は整数で入力してください。'

    return errors


def settings_from_form(form_data, current: RegisterSettings) -> RegisterSettings:
    """Build a RegisterSettings from a form already passed through validation."""
    base = current.benefits

    def _text(name, fallback):
        value = form_data.get(name)
        return fallback if value is None else value.strip()

    benefits = BenefitConfig(
        mode=form_data.get('mode', base.mode).strip(),
        single_benefit=_text('single_benefit', base.single_benefit),
        area1=AreaBenefit(
            label=_text('area1_label', base.area1.label),
            benefit=_text('area1_benefit', base.area1.benefit),
        ),
        area2=AreaBenefit(
            label=_text('area2_label', base.area2.label),
            benefit=_text('area2_benefit', base.area2.benefit),
        ),
        double_dispatch_enabled=form_data.get('double_dispatch_enabled', '').lower() in TRUTHY,
        double_dispatch_benefit=_text('double_dispatch_benefit', base.double_dispatch_benefit),
    )

    catalog = Catalog(
        Product(
            key=p.key,
            name=_text(f'product_{p.key}_name', p.name),
            price=int(form_data.get(f'product_{p.key}_price', p.price)),
            order=p.order,
        )
        for p in current.catalog
    )

    return RegisterSettings(
        catalog=catalog,
        benefits=benefits,
        event_name=_text('event_name', current.event_name),
    )
