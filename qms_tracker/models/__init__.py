"""
QMS Compliance Tracker — persistence and domain models.

``db`` is the Flask-SQLAlchemy handle used by the review audit trail.
The reconciliation types (templates, files, merged records, summaries) are
plain dataclasses in ``qms_tracker.models.qms``; they are rebuilt from the
sheet and Drive on every refresh and are never stored.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
