"""
Canvas models — canvases, agents, agent history.

A Canvas is an org-owned container; Agents are the flat records the grouping
engine operates on; AgentHistory keeps a snapshot of every change for audit.

Agent rows are exchanged with the engine as *records*: plain dicts with the
camelCase keys of the canvas editor's wire format (``phaseOrder``,
``journeySteps``, ...). ``Agent.to_dict()`` produces one and
``Agent.apply_record()`` consumes a (partial) one.
"""

from datetime import datetime, timezone

from agentcanvas.models import db
from agentcanvas.models.base import OrgScopedModel
from agentcanvas.models.soft_delete import SoftDeleteMixin, to_epoch_ms


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. CANVASES
# ═══════════════════════════════════════════════════════════════

class Canvas(SoftDeleteMixin, OrgScopedModel):
    """A named board of agents belonging to one org."""

    __tablename__ = "canvases"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False)
    # Original YAML kept verbatim when the canvas came from a legacy import;
    # export prefers it over regeneration.
    document_text = db.Column(db.Text, nullable=True)
    section_defaults = db.Column(db.JSON, default=dict)
    tools_config = db.Column(db.JSON, default=dict)
    created_by = db.Column(db.String(200), default="system")
    updated_by = db.Column(db.String(200), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    agents = db.relationship(
        "Agent",
        back_populates="canvas",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    __table_args__ = (
        db.Index("ix_canvases_org_slug", "org_id", "slug", unique=True),
    )

    @property
    def settings(self):
        """Document-level settings used when regenerating YAML."""
        return {
            "sectionDefaults": dict(self.section_defaults or {}),
            "toolsConfig": dict(self.tools_config or {}),
        }

    def to_dict(self, include_document=False):
        data = {
            "id": self.id,
            "orgId": self.org_id,
            "title": self.title,
            "slug": self.slug,
            "hasDocument": bool(self.document_text),
            "sectionDefaults": self.section_defaults or {},
            "toolsConfig": self.tools_config or {},
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "createdAt": to_epoch_ms(self.created_at),
            "updatedAt": to_epoch_ms(self.updated_at),
            "deletedAt": self.deleted_at_ms,
        }
        if include_document:
            data["documentText"] = self.document_text
        return data


# ═══════════════════════════════════════════════════════════════
# 2. AGENTS
# ═══════════════════════════════════════════════════════════════

# record key -> column attribute, for the fields a caller may write
RECORD_FIELDS = {
    "name": "name",
    "objective": "objective",
    "description": "description",
    "tools": "tools",
    "journeySteps": "journey_steps",
    "demoLink": "demo_link",
    "videoLink": "video_link",
    "metrics": "metrics",
    "roiContribution": "roi_contribution",
    "tags": "tags",
    "phase": "phase",
    "phaseOrder": "phase_order",
    "agentOrder": "agent_order",
    "agentNumber": "agent_number",
}


class Agent(SoftDeleteMixin, db.Model):
    """A single work item on a canvas."""

    __tablename__ = "agents"

    id = db.Column(db.Integer, primary_key=True)
    canvas_id = db.Column(
        db.Integer,
        db.ForeignKey("canvases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase = db.Column(db.String(200), nullable=False, default="Backlog")
    phase_order = db.Column(db.Integer, nullable=False, default=0)
    agent_order = db.Column(db.Integer, nullable=False, default=0)
    agent_number = db.Column(db.Integer, nullable=True)
    name = db.Column(db.String(200), nullable=False)
    objective = db.Column(db.Text, default="")
    description = db.Column(db.Text, default="")
    tools = db.Column(db.JSON, default=list)
    journey_steps = db.Column(db.JSON, default=list)
    demo_link = db.Column(db.String(1000), nullable=True)
    video_link = db.Column(db.String(1000), nullable=True)
    metrics = db.Column(db.JSON, default=dict)
    roi_contribution = db.Column(db.String(20), nullable=True)
    tags = db.Column(db.JSON, default=dict)  # {"department": "sales", "status": "active"}
    created_by = db.Column(db.String(200), default="system")
    updated_by = db.Column(db.String(200), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    canvas = db.relationship("Canvas", back_populates="agents")
    history = db.relationship(
        "AgentHistory",
        back_populates="agent",
        cascade="all, delete-orphan",
        order_by="AgentHistory.id",
        lazy="dynamic",
    )

    def apply_record(self, record):
        """Copy the writable keys of a (partial) record onto the row."""
        for key, attr in RECORD_FIELDS.items():
            if key in record:
                setattr(self, attr, record[key])

    def to_dict(self):
        return {
            "id": self.id,
            "canvasId": self.canvas_id,
            "name": self.name,
            "objective": self.objective or "",
            "description": self.description or "",
            "tools": list(self.tools or []),
            "journeySteps": list(self.journey_steps or []),
            "demoLink": self.demo_link,
            "videoLink": self.video_link,
            "metrics": dict(self.metrics or {}),
            "roiContribution": self.roi_contribution,
            "tags": dict(self.tags or {}),
            "phase": self.phase,
            "phaseOrder": self.phase_order,
            "agentOrder": self.agent_order,
            "agentNumber": self.agent_number,
            "createdBy": self.created_by,
            "updatedBy": self.updated_by,
            "createdAt": to_epoch_ms(self.created_at),
            "updatedAt": to_epoch_ms(self.updated_at),
            "deletedAt": self.deleted_at_ms,
        }


# ═══════════════════════════════════════════════════════════════
# 3. AGENT HISTORY
# ═══════════════════════════════════════════════════════════════

class AgentHistory(db.Model):
    """Audit row written on every agent create/update/delete."""

    __tablename__ = "agent_history"

    id = db.Column(db.Integer, primary_key=True)
    agent_id = db.Column(
        db.Integer,
        db.ForeignKey("agents.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    change_type = db.Column(db.String(10), nullable=False)  # create | update | delete
    changed_by = db.Column(db.String(200), default="system")
    changed_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    previous_data = db.Column(db.JSON, nullable=True)

    agent = db.relationship("Agent", back_populates="history")

    def to_dict(self):
        return {
            "id": self.id,
            "agentId": self.agent_id,
            "changeType": self.change_type,
            "changedBy": self.changed_by,
            "changedAt": to_epoch_ms(self.changed_at),
            "previousData": self.previous_data,
        }
