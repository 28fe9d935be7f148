"""
OrgScopedModel — abstract base class for org-scoped tables.

Every canvas belongs to exactly one organization. Models that need org
isolation inherit from OrgScopedModel instead of db.Model directly. This adds:
  - org_id column with index (external org identifier, e.g. "org_01H...")
  - query_for_org(org_id) classmethod
"""

from agentcanvas.models import db


class OrgScopedModel(db.Model):
    """Abstract base for org-scoped tables."""
    __abstract__ = True

    org_id = db.Column(db.String(100), nullable=False, index=True)

    @classmethod
    def query_for_org(cls, org_id):
        """Return a query filtered by org_id."""
        return cls.query.filter_by(org_id=org_id)
