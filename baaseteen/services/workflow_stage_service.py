"""
Workflow stage master data and stage resolution.

Stages are configurable per case type.  A stage with NULL ``case_type_id``
applies to every case type and is used as the fallback when no
case-type-specific stage matches.
"""

import logging

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from baaseteen.core.exceptions import (
    ConflictError,
    NotFoundError,
    TransactionFailure,
    ValidationError,
)
from baaseteen.models import db
from baaseteen.models.case import CASE_STATUSES, CaseType, WorkflowStage

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("stage_name", "description", "sort_order", "is_active", "associated_statuses")


def _scoped_candidates(case_type_id):
    """Active stages for *case_type_id* first, then agnostic ones, each by sort order."""
    query = WorkflowStage.query.filter(WorkflowStage.is_active.is_(True))
    if case_type_id is None:
        query = query.filter(WorkflowStage.case_type_id.is_(None))
    else:
        query = query.filter(or_(
            WorkflowStage.case_type_id == case_type_id,
            WorkflowStage.case_type_id.is_(None),
        ))
    stages = query.order_by(WorkflowStage.sort_order, WorkflowStage.id).all()
    return sorted(stages, key=lambda s: s.case_type_id is None)


def resolve_stage_by_key(stage_key, case_type_id=None):
    """Active stage with *stage_key*, case-type specific before agnostic."""
    for stage in _scoped_candidates(case_type_id):
        if stage.stage_key == stage_key:
            return stage
    return None


def resolve_stage_for_status(status, case_type_id=None):
    """Active stage whose ``associated_statuses`` contains *status*."""
    for stage in _scoped_candidates(case_type_id):
        if status in (stage.associated_statuses or []):
            return stage
    return None


def list_stages(case_type_id=None, include_inactive=False):
    query = WorkflowStage.query
    if not include_inactive:
        query = query.filter(WorkflowStage.is_active.is_(True))
    if case_type_id is not None:
        query = query.filter(or_(
            WorkflowStage.case_type_id == case_type_id,
            WorkflowStage.case_type_id.is_(None),
        ))
    return query.order_by(WorkflowStage.sort_order, WorkflowStage.id).all()


def _validate_statuses(statuses):
    if not isinstance(statuses, list):
        raise ValidationError(
            "associated_statuses must be a list",
            details={"associated_statuses": "expected a list of case statuses"},
        )
    unknown = [s for s in statuses if s not in CASE_STATUSES]
    if unknown:
        raise ValidationError(
            f"Unknown case statuses: {', '.join(map(str, unknown))}",
            details={"associated_statuses": unknown},
        )
    return list(statuses)


def _sort_order(value):
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError("sort_order must be an integer", details={"sort_order": "integer"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            "sort_order must be an integer", details={"sort_order": "integer"},
        ) from None


def create_stage(data: dict) -> WorkflowStage:
    stage_key = (data.get("stage_key") or "").strip()
    stage_name = (data.get("stage_name") or "").strip()
    missing = [f for f, v in (("stage_key", stage_key), ("stage_name", stage_name)) if not v]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            details={f: "required" for f in missing},
        )

    case_type_id = data.get("case_type_id")
    if case_type_id is not None and db.session.get(CaseType, case_type_id) is None:
        raise NotFoundError("CaseType", case_type_id)

    duplicate = WorkflowStage.query.filter_by(stage_key=stage_key, case_type_id=case_type_id).first()
    if duplicate:
        raise ConflictError("WorkflowStage", "stage_key", stage_key)

    stage = WorkflowStage(
        stage_key=stage_key,
        stage_name=stage_name,
        description=data.get("description"),
        sort_order=_sort_order(data.get("sort_order")),
        is_active=bool(data.get("is_active", True)),
        case_type_id=case_type_id,
        associated_statuses=_validate_statuses(data.get("associated_statuses") or []),
    )
    db.session.add(stage)
    _commit("create_stage")
    logger.info("Workflow stage created: %s (%s)", stage.stage_key, stage.id)
    return stage


def update_stage(stage_id: int, data: dict) -> WorkflowStage:
    stage = db.session.get(WorkflowStage, stage_id)
    if stage is None:
        raise NotFoundError("WorkflowStage", stage_id)

    for field in _UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "associated_statuses":
            value = _validate_statuses(value)
        elif field == "stage_name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("stage_name cannot be empty", details={"stage_name": "required"})
        elif field == "sort_order":
            value = _sort_order(value)
        elif field == "is_active":
            value = bool(value)
        setattr(stage, field, value)

    _commit("update_stage", stage_id)
    return stage


def _commit(operation, entity_id=None):
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Database error in %s", operation)
        raise TransactionFailure(operation, entity_id) from exc
