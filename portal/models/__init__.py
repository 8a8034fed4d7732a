"""
SQLAlchemy models.

Every model module imports the shared ``db`` handle from here:

    from portal.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
