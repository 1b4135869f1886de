"""
Database models for the investor forms record store.

- FormRecord: one form instance, its payload and per-page completion
- AuditLog: append-only trail of record lifecycle events
"""

import json
import hashlib
import uuid
from enum import Enum as PyEnum

from investor_forms import db
from investor_forms.utils import format_timestamp, utcnow


class RecordStatus(PyEnum):
    """Record lifecycle states."""
    DRAFT = 'draft'
    SUBMITTED = 'submitted'  # Final state until edited again


def generate_record_id():
    return uuid.uuid4().hex


class FormRecord(db.Model):
    """
    A stored form instance.

    The payload holds the backend-shaped business keys. page_keys records
    which keys each page wrote last, so a page save can replace exactly the
    keys it owns.
    """
    __tablename__ = 'form_records'

    id = db.Column(db.String(36), primary_key=True, default=generate_record_id)
    form_type = db.Column(db.String(50), nullable=False, index=True)
    status = db.Column(db.String(20), default=RecordStatus.DRAFT.value, nullable=False)

    payload_json = db.Column(db.Text, nullable=False, default='{}')
    page_keys_json = db.Column(db.Text, nullable=False, default='{}')
    page_completion_json = db.Column(db.Text, nullable=False, default='{}')

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=True)

    audit_logs = db.relationship('AuditLog', backref='record', lazy='dynamic')

    def __repr__(self):
        return f'<FormRecord {self.id} {self.form_type} - {self.status}>'

    def get_payload(self):
        """Deserialize the JSON payload."""
        return json.loads(self.payload_json or '{}')

    def set_payload(self, payload):
        """Serialize the payload to JSON with stable ordering."""
        self.payload_json = json.dumps(payload, sort_keys=True)

    def get_page_keys(self):
        return json.loads(self.page_keys_json or '{}')

    def set_page_keys(self, page_keys):
        self.page_keys_json = json.dumps(page_keys, sort_keys=True)

    def get_page_completion(self):
        return json.loads(self.page_completion_json or '{}')

    def mark_page_completed(self, page):
        """Record a successful save of a page."""
        completion = self.get_page_completion()
        completion[str(page)] = {
            'completed': True,
            'completedAt': format_timestamp(utcnow()),
        }
        self.page_completion_json = json.dumps(completion, sort_keys=True)

    @property
    def is_submitted(self):
        return self.status == RecordStatus.SUBMITTED.value

    def to_record(self):
        """Flat backend record: payload keys plus record metadata."""
        record = self.get_payload()
        record.update({
            'id': self.id,
            'formType': self.form_type,
            'status': self.status,
            'pageCompletionStatus': self.get_page_completion(),
            'createdAt': format_timestamp(self.created_at),
            'updatedAt': format_timestamp(self.updated_at),
            'submittedAt': format_timestamp(self.submitted_at),
        })
        return record


class AuditLog(db.Model):
    """
    One entry of the append-only audit trail.

    Rows are never updated or deleted; integrity_hash covers every field an
    edit could falsify, so tampering shows up in verify_integrity().
    """
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

    actor_type = db.Column(db.String(20), nullable=False)  # 'user' or 'system'
    actor_id = db.Column(db.String(100), nullable=True)

    action = db.Column(db.String(50), nullable=False)
    action_category = db.Column(db.String(20), nullable=False)

    record_id = db.Column(db.String(36), db.ForeignKey('form_records.id'), nullable=True, index=True)
    form_type = db.Column(db.String(50), nullable=True)

    # Field ids, counts and page numbers only
    details_json = db.Column(db.Text, nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    error_message = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    integrity_hash = db.Column(db.String(64), nullable=False)

    def __repr__(self):
        return f'<AuditLog {self.id} {self.action} {self.record_id or "-"}>'

    def to_dict(self):
        return {
            'id': self.id,
            'timestamp': format_timestamp(self.timestamp),
            'actor_type': self.actor_type,
            'actor_id': self.actor_id,
            'action': self.action,
            'action_category': self.action_category,
            'record_id': self.record_id,
            'form_type': self.form_type,
            'details': json.loads(self.details_json) if self.details_json else None,
            'success': self.success,
            'error_message': self.error_message,
        }

    def compute_integrity_hash(self):
        """SHA-256 over a canonical JSON rendering of the entry's content."""
        content = json.dumps([
            self.timestamp.isoformat() if self.timestamp else None,
            self.actor_type,
            self.actor_id,
            self.action,
            self.form_type,
            self.record_id,
            self.details_json,
            bool(self.success),
        ])
        return hashlib.sha256(content.encode()).hexdigest()

    def verify_integrity(self):
        return self.integrity_hash == self.compute_integrity_hash()
