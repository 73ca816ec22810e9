"""
app/reports/__init__.py
-----------------------
Daily sales report blueprint.
URL prefix: /reports
"""
from flask import Blueprint

reports = Blueprint('reports', __name__)

from app.reports import routes  # noqa: E402, F401
