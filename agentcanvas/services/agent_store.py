"""
Agent record store — the flat record interface over SQLAlchemy.

    store = AgentStore(org_id="org_acme", actor="alice@acme.test")
    store.list(canvas_id)                  # -> [record, ...]
    agent_id = store.create(canvas_id, {"name": "Lead Scorer", "phase": "Discover"})
    store.update(agent_id, {"objective": "Rank inbound leads"})
    store.delete(agent_id)                 # soft delete, history kept
    store.bulk_replace(canvas_id, records) # import/export write-back, one transaction

Every lookup is scoped to ``org_id``; an agent or canvas of another org is
reported as NotFoundError exactly like a missing one. Each create/update/delete
writes an ``AgentHistory`` row holding the previous snapshot.

Input is validated before anything is added to the session. Database failures
roll the session back and surface as StoreError; nothing is retried.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from agentcanvas.core.exceptions import NotFoundError, StoreError, ValidationError
from agentcanvas.models import db
from agentcanvas.models.canvas import Agent, AgentHistory, Canvas, RECORD_FIELDS
from agentcanvas.services.identifiers import assign_sequence_number
from agentcanvas.services.legacy_import import metrics_to_record
from agentcanvas.services.schema import (
    AGENT_NAME_MAX,
    PHASE_MAX,
    Violation,
    decode_agent,
    violations_to_error,
)

logger = logging.getLogger(__name__)

DEFAULT_PHASE = "Backlog"


def _commit(operation: str) -> None:
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Agent store %s failed", operation)
        raise StoreError(operation, str(getattr(exc, "orig", None) or exc)) from exc


class AgentStore:
    """Org-scoped CRUD over agent records."""

    def __init__(self, org_id: str, actor: str = "system", name_max_length: int = AGENT_NAME_MAX):
        self.org_id = org_id
        self.actor = actor
        self.name_max_length = name_max_length

    # ── lookups ───────────────────────────────────────────────────────

    def get_canvas(self, canvas_id) -> Canvas:
        canvas = (
            Canvas.query_for_org(self.org_id)
            .filter(Canvas.id == canvas_id, Canvas.deleted_at.is_(None))
            .first()
        )
        if canvas is None:
            raise NotFoundError("Canvas", canvas_id, self.org_id)
        return canvas

    def _agent(self, agent_id, include_deleted: bool = False) -> Agent:
        query = (
            Agent.query.join(Canvas, Agent.canvas_id == Canvas.id)
            .filter(Agent.id == agent_id, Canvas.org_id == self.org_id)
        )
        if not include_deleted:
            query = query.filter(Agent.deleted_at.is_(None), Canvas.deleted_at.is_(None))
        agent = query.first()
        if agent is None:
            raise NotFoundError("Agent", agent_id, self.org_id)
        return agent

    def get(self, agent_id) -> dict:
        return self._agent(agent_id).to_dict()

    def list(self, canvas_id, include_deleted: bool = False) -> list[dict]:
        self.get_canvas(canvas_id)
        query = Agent.query if include_deleted else Agent.query_active()
        query = query.filter_by(canvas_id=canvas_id)
        rows = query.order_by(Agent.phase_order, Agent.agent_order, Agent.id).all()
        return [row.to_dict() for row in rows]

    def history(self, agent_id) -> list[dict]:
        agent = self._agent(agent_id, include_deleted=True)
        return [h.to_dict() for h in agent.history.all()]

    # ── validation ────────────────────────────────────────────────────

    def _clean(self, record, path: str = "agent", new: bool = False) -> dict:
        """Validate a record and convert metrics to the stored shape.

        New records get a null ``phaseOrder``/``agentOrder`` allocated from
        their phase; an update may not null them.
        """
        if not isinstance(record, dict):
            raise ValidationError(f"{path} must be an object", details={path: "invalid type"})
        payload = dict(record)
        metrics = payload.pop("metrics", None)
        if new and payload.get("phase") is None:
            payload["phase"] = DEFAULT_PHASE

        value, violations = decode_agent(
            payload, path=path, strict=True, name_max=self.name_max_length)
        if metrics is not None and not isinstance(metrics, dict):
            violations.append(Violation(f"{path}.metrics", "must be an object"))
        elif metrics is not None:
            stored, roi = metrics_to_record(metrics)
            for key, number in stored.items():
                if number < 0:
                    violations.append(Violation(
                        f"{path}.metrics.{key}", "must be greater than or equal to 0"))
            value["metrics"] = stored
            if roi and not value.get("roiContribution"):
                value["roiContribution"] = roi
        else:
            value.pop("metrics", None)

        for key in ("phaseOrder", "agentOrder"):
            order = value.get(key)
            if order is None and key in value:
                if new:
                    value.pop(key)
                else:
                    violations.append(Violation(f"{path}.{key}", "must be an integer"))
            elif order is not None and (isinstance(order, bool) or not isinstance(order, int)):
                violations.append(Violation(f"{path}.{key}", "must be an integer"))
        if violations:
            raise violations_to_error(violations)
        return value

    def _phase_slots(self, canvas_id, phase: str) -> tuple[int, int]:
        """(phaseOrder, active agent count) for a phase, allocating a new order."""
        active = Agent.query.filter(Agent.canvas_id == canvas_id, Agent.deleted_at.is_(None))
        existing = active.filter(Agent.phase == phase).first()
        count = active.filter(Agent.phase == phase).count()
        if existing is not None:
            return existing.phase_order, count
        top = (
            db.session.query(func.max(Agent.phase_order))
            .filter(Agent.canvas_id == canvas_id, Agent.deleted_at.is_(None))
            .scalar()
        )
        return (0 if top is None else top + 1), count

    def _record_history(self, agent: Agent, change_type: str, previous) -> None:
        db.session.add(AgentHistory(
            agent=agent,
            change_type=change_type,
            changed_by=self.actor,
            previous_data=previous,
        ))

    # ── writes ────────────────────────────────────────────────────────

    def _build(self, canvas_id, value: dict, slots: dict) -> Agent:
        phase = value.get("phase") or DEFAULT_PHASE
        if phase not in slots:
            slots[phase] = list(self._phase_slots(canvas_id, phase))
        phase_order, count = slots[phase]
        value.setdefault("phaseOrder", phase_order)
        value.setdefault("agentOrder", count)
        value["agentNumber"] = assign_sequence_number(
            value.get("agentNumber"), is_new=True, collection_size=count)
        slots[phase][1] = count + 1

        agent = Agent(canvas_id=canvas_id, created_by=self.actor, updated_by=self.actor)
        agent.apply_record(value)
        agent.phase = phase
        return agent

    def create(self, canvas_id, record: dict) -> int:
        self.get_canvas(canvas_id)
        value = self._clean(record, new=True)
        agent = self._build(canvas_id, value, {})
        db.session.add(agent)
        self._record_history(agent, "create", None)
        _commit("create")
        logger.info("Agent %s created on canvas %s (org=%s)", agent.id, canvas_id, self.org_id)
        return agent.id

    def update(self, agent_id, partial: dict) -> dict:
        agent = self._agent(agent_id)
        if not isinstance(partial, dict):
            raise ValidationError("agent must be an object", details={"agent": "invalid type"})
        before = agent.to_dict()
        merged = {k: v for k, v in before.items() if k in RECORD_FIELDS}
        merged.pop("metrics", None)
        if "metrics" in partial:
            merged["metrics"] = partial["metrics"]
        merged.update({k: v for k, v in partial.items() if k in RECORD_FIELDS and k != "metrics"})
        value = self._clean(merged)

        changed = {k: value.get(k) for k in RECORD_FIELDS if k in partial or k == "name"}
        if "metrics" in partial and "roiContribution" not in partial and value.get("roiContribution"):
            changed["roiContribution"] = value["roiContribution"]
        if "agentNumber" in changed:
            changed["agentNumber"] = assign_sequence_number(
                changed["agentNumber"],
                is_new=False,
                collection_size=0,
                prior=before["agentNumber"],
                position=before["agentOrder"],
            )
        if "phase" in partial and changed["phase"] != before["phase"]:
            # moved agents join the target phase at its end
            phase_order, count = self._phase_slots(agent.canvas_id, changed["phase"])
            if "phaseOrder" not in partial:
                changed["phaseOrder"] = phase_order
            if "agentOrder" not in partial:
                changed["agentOrder"] = count
        agent.apply_record(changed)
        agent.updated_by = self.actor
        self._record_history(agent, "update", before)
        _commit("update")
        return agent.to_dict()

    def delete(self, agent_id) -> None:
        agent = self._agent(agent_id)
        before = agent.to_dict()
        agent.soft_delete()
        agent.updated_by = self.actor
        self._record_history(agent, "delete", before)
        _commit("delete")
        logger.info("Agent %s deleted (org=%s)", agent_id, self.org_id)

    def bulk_replace(self, canvas_id, records: list[dict], commit: bool = True) -> list[int]:
        """Replace the canvas's active agents with ``records`` atomically.

        All records are validated first; a single bad record rejects the whole
        batch before the session is touched. Replaced agents are soft deleted.
        """
        self.get_canvas(canvas_id)
        if not isinstance(records, list):
            raise ValidationError("records must be a list", details={"records": "invalid type"})
        values = [
            self._clean(record, path=f"records[{idx}]", new=True)
            for idx, record in enumerate(records)
        ]
        return self._replace(canvas_id, values, commit=commit)

    def _replace(self, canvas_id, values: list[dict], commit: bool = True) -> list[int]:
        current = Agent.query.filter(
            Agent.canvas_id == canvas_id, Agent.deleted_at.is_(None)).all()
        for agent in current:
            before = agent.to_dict()
            agent.soft_delete()
            agent.updated_by = self.actor
            self._record_history(agent, "delete", before)
        db.session.flush()

        # replaced agents no longer count towards phase slots
        slots: dict = {}
        created = []
        for value in values:
            agent = self._build(canvas_id, value, slots)
            db.session.add(agent)
            self._record_history(agent, "create", None)
            created.append(agent)
        if not commit:
            db.session.flush()
            return [a.id for a in created]
        _commit("bulk_replace")
        logger.info(
            "Canvas %s agents replaced: %d removed, %d created (org=%s)",
            canvas_id, len(current), len(created), self.org_id,
        )
        return [a.id for a in created]

    def rename_phase(self, canvas_id, old_phase: str, new_phase) -> int:
        """Rename a phase on every active agent of the canvas. Returns the count."""
        self.get_canvas(canvas_id)
        name = new_phase.strip() if isinstance(new_phase, str) else ""
        if not name:
            raise ValidationError("newPhase is required", details={"newPhase": "required"})
        if len(name) > PHASE_MAX:
            raise ValidationError(
                f"newPhase must be at most {PHASE_MAX} characters",
                details={"newPhase": f"max {PHASE_MAX} characters"},
            )
        agents = Agent.query.filter(
            Agent.canvas_id == canvas_id,
            Agent.deleted_at.is_(None),
            Agent.phase == old_phase,
        ).all()
        if not agents:
            raise NotFoundError("Phase", old_phase, self.org_id)
        for agent in agents:
            before = agent.to_dict()
            agent.phase = name
            agent.updated_by = self.actor
            self._record_history(agent, "update", before)
        _commit("rename_phase")
        logger.info("Phase '%s' renamed to '%s' on canvas %s (%d agents)",
                    old_phase, name, canvas_id, len(agents))
        return len(agents)
