"""
Montage Workflow Service
SQLAlchemy extension instance shared by every model module.

Usage:
    from montage_flow.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
