"""
app/settings/__init__.py
------------------------
Settings blueprint: product catalog and benefit rules.
URL prefix: /settings
"""
from flask import Blueprint

settings = Blueprint('settings', __name__)

from app.settings import routes  # noqa: E402, F401
from app.settings import models  # noqa: E402, F401  — registers AppSetting with SQLAlchemy
