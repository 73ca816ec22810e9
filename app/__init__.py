import click
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from app.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from app.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from app.register import register as register_blueprint
    app.register_blueprint(register_blueprint, url_prefix='/sales')

    from app.reports import reports as reports_blueprint
    app.register_blueprint(reports_blueprint, url_prefix='/reports')

    from app.settings import settings as settings_blueprint
    app.register_blueprint(settings_blueprint, url_prefix='/settings')

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import render_template
        return render_template('errors/404.html', title='Page Not Found'), 404

    @app.errorhandler(500)
    def internal_error(e):
        from flask import render_template
        return render_template('errors/500.html', title='Server Error'), 500

    from app.register.ledger import LedgerPersistenceError

    @app.errorhandler(LedgerPersistenceError)
    def ledger_unavailable(e):
        from flask import render_template
        app.logger.error(f"Ledger unavailable: {e}")
        return render_template('errors/500.html', title='Ledger Error', message=str(e)), 500

    # ── Context Processor ─────────────────────────────────────────
    @app.context_processor
    def inject_config():
        """Make app.config available in templates."""
        return dict(config=app.config)

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


def _parse_day(value):
    from datetime import datetime
    from app.register.ledger import register_today

    if not value:
        return register_today()
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise click.BadParameter('expected YYYY-MM-DD', param_hint='--day')


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables and store default settings if none exist."""
        from app.settings.models import AppSetting
        from app.settings.store import save_settings, RegisterSettings

        db.create_all()
        click.echo('✅  Database tables created.')

        if AppSetting.query.first() is None:
            save_settings(RegisterSettings())
            click.echo('✅  Default catalog and benefit settings stored.')
        else:
            click.echo('ℹ️   Settings already exist.')

    @app.cli.command('seed-settings')
    @click.option('--force', is_flag=True, help='Overwrite existing settings')
    def seed_settings(force):
        """Store the default catalog and benefit rules."""
        from app.settings.models import AppSetting
        from app.settings.store import reset_settings

        db.create_all()
        if AppSetting.query.first() is not None and not force:
            click.echo('⚠️  Settings already exist. Use --force to overwrite.')
            return
        reset_settings()
        click.echo('✅  Default settings stored.')

    @app.cli.command('show-ledger')
    @click.option('--day', default=None, help='Day to show (YYYY-MM-DD), default today')
    def show_ledger(day):
        """Print one day's sales and totals (diagnostic)."""
        from app.register.ledger import Ledger, register_timezone
        from app.reports.aggregator import build_report
        from app.settings.store import load_settings

        ledger = Ledger.load_for_day(_parse_day(day))
        report = build_report(ledger, load_settings())
        tz     = register_timezone()

        if not len(ledger):
            click.echo(f'No sales recorded for {ledger.day}.')
            return

        click.echo(f'{"Time":<10} {"Type":<8} {"Name":<16} {"Total":>8}')
        click.echo('─' * 45)
        for r in ledger:
            click.echo(
                f'{r.created_at.astimezone(tz).strftime("%H:%M:%S"):<10} '
                f'{report.mobilization_label(r) or "-":<8} '
                f'{(r.customer_name or "-")[:16]:<16} '
                f'{r.total_amount:>8,}'
            )
        click.echo('─' * 45)
        click.echo(f'Transactions: {report.transaction_count}  '
                   f'Mobilization: {report.mobilization_count}  '
                   f'Double dispatch: {report.double_dispatch_count}')
        click.echo(f'Total: ¥{report.total_sales:,}')

    @app.cli.command('export-csv')
    @click.option('--day', default=None, help='Day to export (YYYY-MM-DD), default today')
    @click.option('--out', 'out_path', default=None, help='Output path, default 物販売上_<day>.csv')
    def export_csv_command(day, out_path):
        """Write one day's sales CSV to disk."""
        from app.register.ledger import Ledger, register_timezone
        from app.reports.aggregator import build_report
        from app.reports.export import export_csv, csv_filename
        from app.settings.store import load_settings

        ledger  = Ledger.load_for_day(_parse_day(day))
        payload = export_csv(build_report(ledger, load_settings()), register_timezone())
        out_path = out_path or csv_filename(ledger.day)

        with open(out_path, 'wb') as fh:
            fh.write(payload)
        click.echo(f'✅  {len(ledger)} records written to {out_path}.')
