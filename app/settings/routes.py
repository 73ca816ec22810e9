"""
app/settings/routes.py
----------------------
Settings panel: event name, mobilization mode, benefits, catalog prices.
"""
from flask import render_template, redirect, url_for, request, flash, current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.settings import settings
from app.settings.store import load_settings, save_settings, reset_settings
from app.settings.validators import validate_settings_form, settings_from_form


@settings.route('/', methods=['GET', 'POST'])
def index():
    current = load_settings()
    errors  = {}

    if request.method == 'POST':
        errors = validate_settings_form(request.form, current.catalog)
        if not errors:
            updated = settings_from_form(request.form, current)
            try:
                save_settings(updated)
            except SQLAlchemyError as exc:
                db.session.rollback()
                current_app.logger.error(f"Settings save failed: {exc}")
                flash('設定の保存に失敗しました。', 'error')
            else:
                current_app.logger.info(
                    f"Settings updated: mode={updated.benefits.mode} "
                    f"double_dispatch={updated.benefits.double_dispatch_enabled}"
                )
                flash('設定を保存しました。', 'success')
                return redirect(url_for('settings.index'))

    return render_template(
        'settings/index.html',
        title='設定',
        settings=current,
        form=request.form if errors else None,
        errors=errors,
    )


@settings.route('/reset', methods=['POST'])
def reset():
    if request.form.get('confirm') != 'yes':
        flash('初期化はキャンセルされました。', 'info')
        return redirect(url_for('settings.index'))

    try:
        reset_settings()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"Settings reset failed: {exc}")
        flash('設定の初期化に失敗しました。', 'error')
    else:
        current_app.logger.info("Settings reset to defaults")
        flash('設定を初期値に戻しました。', 'success')
    return redirect(url_for('settings.index'))
