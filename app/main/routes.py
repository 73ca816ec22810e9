"""
app/main/routes.py
──────────────────
Landing redirect and health check.
"""
from datetime import datetime

from flask import redirect, url_for, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.main import main
from app.register.ledger import register_today


@main.route("/")
def index():
    return redirect(url_for('register.index'))


@main.route("/health")
def health():
    """Health check for load balancers and monitoring."""
    status   = "ok"
    failures = []

    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        status = "error"
        failures.append(f"DB: {str(e)}")
        current_app.logger.error(f"Health check failed (DB): {e}")

    response = {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "details": {
            "db": "ok" if status == "ok" else "error",
            "register_day": register_today().isoformat(),
            "timezone": current_app.config.get('REGISTER_TIMEZONE'),
        }
    }
    if failures:
        response["failures"] = failures

    return response, 200 if status == "ok" else 500
