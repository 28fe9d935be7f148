"""
AgentCanvas models package.

Exposes the shared Flask-SQLAlchemy instance. Model modules import ``db``
from here and are imported by the app factory so ``db.create_all()`` sees
every table.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
