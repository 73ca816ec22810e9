import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

class Config:
    """Base configuration shared across all environments."""
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }
    # One event day is plenty for a register session
    PERMANENT_SESSION_LIFETIME = timedelta(hours=12)

    # Calendar day boundaries for the daily ledger
    REGISTER_TIMEZONE = os.environ.get('REGISTER_TIMEZONE', 'Asia/Tokyo')

    # TrueType font with Japanese glyphs for the PDF report raster.
    # Falls back to Pillow's bundled font when unset or missing.
    REPORT_FONT_PATH = os.environ.get(
        'REPORT_FONT_PATH',
        '/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc'
    )

    LOG_DIR = os.environ.get('LOG_DIR', os.path.join(os.getcwd(), 'logs'))

    COMPANY_NAME = os.environ.get('COMPANY_NAME', '株式会社めしあがレーベル')

class DevelopmentConfig(Config):
    """Development environment configuration."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL',
        f'sqlite:///{os.path.join(os.getcwd(), "register.db")}'
    )

class ProductionConfig(Config):
    """Production environment configuration."""
    DEBUG = False

    _db_url = os.environ.get('DATABASE_URL')
    if _db_url and _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = _db_url or f'sqlite:///{os.path.join(os.getcwd(), "register.db")}'

    SECRET_KEY = os.environ.get('SECRET_KEY')

    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class TestingConfig(Config):
    """Testing environment configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SESSION_COOKIE_SECURE = False
    SQLALCHEMY_ENGINE_OPTIONS = {}
    LOG_DIR = None  # stdout only

config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
