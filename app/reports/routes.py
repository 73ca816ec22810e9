"""
app/reports/routes.py
──────────────────────
Daily report & exports

Routes:
  GET  /reports/               → summary, per-product table, benefit list
  GET  /reports/export.csv     → CSV download of the day's sales
  GET  /reports/export.pdf     → rasterised one-page PDF of the report

All three accept ?day=YYYY-MM-DD (defaults to today in the register
timezone).
"""
from datetime import datetime
from urllib.parse import quote

from flask import render_template, request, redirect, url_for, flash, Response, current_app

from app.reports import reports
from app.reports.aggregator import build_report
from app.reports.export import (
    ReportRenderError, export_csv, export_pdf, csv_filename, pdf_filename,
)
from app.register.ledger import Ledger, LedgerStore, register_today, register_timezone
from app.settings.store import load_settings


# ── Shared helpers ────────────────────────────────────────────────

def _selected_day():
    """Parse ?day=, falling back to today for missing or malformed input."""
    day_str = request.args.get('day', '')
    if day_str:
        try:
            return datetime.strptime(day_str, '%Y-%m-%d').date()
        except ValueError:
            pass   # malformed date, show today
    return register_today()


def _report_for(day):
    return build_report(Ledger.load_for_day(day), load_settings())


def _download(payload: bytes, filename: str, mimetype: str) -> Response:
    """
    Attachment response. The filename is Japanese, so it goes out as
    RFC 5987 `filename*` with an ASCII fallback.
    """
    fallback = filename.rsplit('_', 1)[-1]
    return Response(
        payload,
        mimetype=mimetype,
        headers={
            'Content-Disposition': (
                f'attachment; filename="{fallback}"; '
                f"filename*=UTF-8''{quote(filename)}"
            ),
        },
    )


# ═══════════════════════════════════════════════════════════════════
# 1. DAILY REPORT  —  GET /reports/
# ═══════════════════════════════════════════════════════════════════

@reports.route('/')
def index():
    day    = _selected_day()
    report = _report_for(day)
    return render_template(
        'reports/daily.html',
        title='売上日報',
        report=report,
        days=LedgerStore().days(),
        tz=register_timezone(),
        company_name=current_app.config.get('COMPANY_NAME', ''),
    )


# ═══════════════════════════════════════════════════════════════════
# 2. CSV EXPORT  —  GET /reports/export.csv
# ═══════════════════════════════════════════════════════════════════

@reports.route('/export.csv')
def export_csv_view():
    """Uses csv + io.StringIO in memory; no temp files."""
    day    = _selected_day()
    report = _report_for(day)
    payload = export_csv(report, register_timezone())

    current_app.logger.info(f"CSV export {day} | {report.transaction_count} records")
    return _download(payload, csv_filename(day), 'text/csv; charset=utf-8')


# ═══════════════════════════════════════════════════════════════════
# 3. PDF EXPORT  —  GET /reports/export.pdf
# ═══════════════════════════════════════════════════════════════════

@reports.route('/export.pdf')
def export_pdf_view():
    day    = _selected_day()
    report = _report_for(day)

    try:
        payload = export_pdf(
            report,
            register_timezone(),
            font_path=current_app.config.get('REPORT_FONT_PATH'),
            company_name=current_app.config.get('COMPANY_NAME', ''),
        )
    except ReportRenderError as exc:
        current_app.logger.error(f"PDF export {day} failed: {exc}")
        flash('PDF生成に失敗しました', 'error')
        return redirect(url_for('reports.index', day=day.isoformat()))

    current_app.logger.info(f"PDF export {day} | {len(payload)} bytes")
    return _download(payload, pdf_filename(day), 'application/pdf')
