"""
Licensing Workflow Engine
Shared SQLAlchemy extension instance.

Usage:
    from alms.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
