"""
AgencyFlow
SQLAlchemy extension instance shared by all models.

Usage:
    from agencyflow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
