"""
app/register/__init__.py
------------------------
Merchandise register blueprint.
URL prefix: /sales
"""
from flask import Blueprint

register = Blueprint('register', __name__)

from app.register import routes  # noqa: F401, E402
from app.register import models  # noqa: F401, E402  — registers DailyLedger with SQLAlchemy
