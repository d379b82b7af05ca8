"""
Brand Studio - Database
Flask-SQLAlchemy binding; PostgreSQL in production, SQLite for local runs and tests
"""
import logging

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)


def init_db(app):
    """Bind the ORM to the app and create missing tables"""
    db.init_app(app)

    with app.app_context():
        from app.models import db_models  # noqa: F401

        db.create_all()
        logger.info(f"✓ Database ready ({db.engine.dialect.name})")
