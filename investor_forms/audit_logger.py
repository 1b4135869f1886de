"""
Append-only audit trail for form records.

Every record lifecycle event (create, page save, submit, rejected submit)
and every failed validation request is written as an AuditLog row carrying
a SHA-256 integrity hash. Field values are never written to the trail, only
field ids and counts. A failure to write an entry is logged and swallowed so
it can never break the operation being audited.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app, has_request_context, request

from investor_forms import db
from investor_forms.models import AuditLog
from investor_forms.utils import utcnow


class AuditAction:
    """Constants for audit actions."""
    RECORD_CREATED = 'record_created'
    RECORD_UPDATED = 'record_updated'
    RECORD_SUBMITTED = 'record_submitted'
    SUBMIT_REJECTED = 'submit_rejected'
    VALIDATION_FAILED = 'validation_failed'
    ERROR_OCCURRED = 'error_occurred'


class AuditCategory:
    """Constants for audit action categories."""
    CREATE = 'create'
    UPDATE = 'update'
    SUBMIT = 'submit'
    VALIDATE = 'validate'
    SYSTEM = 'system'


def _request_actor() -> Dict[str, Optional[str]]:
    """Actor fields for the current HTTP request; a system actor otherwise."""
    if not has_request_context():
        return {'actor_type': 'system', 'ip_address': None, 'user_agent': None}
    return {
        'actor_type': 'user',
        'ip_address': request.remote_addr,
        'user_agent': request.headers.get('User-Agent'),
    }


def log_action(
    action: str,
    action_category: str,
    form_type: Optional[str] = None,
    record_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    success: bool = True,
    error_message: Optional[str] = None
) -> Optional[AuditLog]:
    """
    Log an action to the audit trail.

    Args:
        action: The action performed (use AuditAction constants)
        action_category: Category of action (use AuditCategory constants)
        form_type: Form type of the affected record
        record_id: Identifier of the affected record
        actor_id: Identifier of the actor; defaults to the request's IP address
        details: Additional structured details (no field values)
        success: Whether the action succeeded
        error_message: Error message if action failed

    Returns:
        The created AuditLog row, or None if it could not be written
    """
    actor = _request_actor()
    try:
        audit_log = AuditLog(
            timestamp=utcnow(),
            action=action,
            action_category=action_category,
            form_type=form_type,
            record_id=record_id,
            actor_type=actor['actor_type'],
            actor_id=actor_id or actor['ip_address'],
            details_json=json.dumps(details, sort_keys=True) if details else None,
            success=success,
            error_message=error_message,
            ip_address=actor['ip_address'],
            user_agent=actor['user_agent'],
        )
        audit_log.integrity_hash = audit_log.compute_integrity_hash()

        db.session.add(audit_log)
        db.session.commit()
        return audit_log

    except Exception as e:
        db.session.rollback()
        current_app.logger.error('Failed to write audit entry %s for %s: %s', action, record_id, e)
        return None


def log_record_created(form_type: str, record_id: str, page: int) -> Optional[AuditLog]:
    """Log record creation."""
    return log_action(
        action=AuditAction.RECORD_CREATED,
        action_category=AuditCategory.CREATE,
        form_type=form_type,
        record_id=record_id,
        details={'page': page}
    )


def log_record_updated(form_type: str, record_id: str, page: int, keys: List[str]) -> Optional[AuditLog]:
    """Log a page save of an existing record."""
    return log_action(
        action=AuditAction.RECORD_UPDATED,
        action_category=AuditCategory.UPDATE,
        form_type=form_type,
        record_id=record_id,
        details={'page': page, 'keys': sorted(keys)}
    )


def log_record_submitted(form_type: str, record_id: str) -> Optional[AuditLog]:
    """Log record submission."""
    return log_action(
        action=AuditAction.RECORD_SUBMITTED,
        action_category=AuditCategory.SUBMIT,
        form_type=form_type,
        record_id=record_id
    )


def log_submit_rejected(form_type: str, record_id: str, errors: Dict[str, str]) -> Optional[AuditLog]:
    """Log a submission refused because the stored record does not validate."""
    return log_action(
        action=AuditAction.SUBMIT_REJECTED,
        action_category=AuditCategory.SUBMIT,
        form_type=form_type,
        record_id=record_id,
        details={'error_count': len(errors), 'fields': sorted(errors)},
        success=False,
        error_message='Record failed validation'
    )


def log_validation_failed(form_type: str, errors: Dict[str, str], page: Optional[int] = None) -> Optional[AuditLog]:
    """Log a failed validation request. Field values are not recorded."""
    return log_action(
        action=AuditAction.VALIDATION_FAILED,
        action_category=AuditCategory.VALIDATE,
        form_type=form_type,
        details={'page': page, 'error_count': len(errors), 'fields': sorted(errors)},
        success=False
    )


def verify_audit_integrity() -> Tuple[int, int, List[int]]:
    """Recompute every entry's hash; returns (valid_count, invalid_count, invalid_ids)."""
    invalid_ids = [log.id for log in AuditLog.query.order_by(AuditLog.id).all() if not log.verify_integrity()]
    total = AuditLog.query.count()
    return total - len(invalid_ids), len(invalid_ids), invalid_ids


def get_audit_trail_for_record(record_id: str) -> List[Dict[str, Any]]:
    """All entries for a record, oldest first."""
    logs = (
        AuditLog.query.filter_by(record_id=record_id)
        .order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
        .all()
    )
    return [log.to_dict() for log in logs]
