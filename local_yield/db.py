"""Database setup utilities.

This module centralises the SQLAlchemy extension object used by the
models throughout The Local Yield. The application factory binds it to
the Flask app, so import ``db`` from ``local_yield`` rather than
creating new engines elsewhere.
"""
from __future__ import annotations

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
