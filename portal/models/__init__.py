"""
Company Portal
Model registry: the shared Flask-SQLAlchemy handle.

Every model module imports ``db`` from here so that one metadata object
covers the whole schema (Alembic autogenerate relies on it).
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
