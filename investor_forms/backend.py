"""
Record backend: the contract the workflow persists through, and the
reference implementation stored with Flask-SQLAlchemy.

Operations (per form type):
    create(payload, page=1)       -> {id, pageCompletionStatus}
    get(record_id)                -> flat backend record
    update(record_id, page, data) -> {pageCompletionStatus}
    submit(record_id)             -> None
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

from flask import current_app

from investor_forms import db
from investor_forms.audit_logger import (
    log_record_created, log_record_submitted, log_record_updated, log_submit_rejected,
)
from investor_forms.errors import (
    InvalidPageError, RecordConflictError, RecordNotFoundError, RecordValidationError,
)
from investor_forms.models import FormRecord, RecordStatus
from investor_forms.registry import get_form_definition
from investor_forms.utils import utcnow


class RecordBackend(ABC):
    """Async record API for one form type, as consumed by FormSession."""

    @abstractmethod
    async def create(self, payload: Mapping[str, Any], page: int = 1) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def get(self, record_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update(self, record_id: str, page: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def submit(self, record_id: str) -> None:
        ...


class RecordStore:
    """
    Synchronous record store on the application database.

    Must be used inside an application context.
    """

    def _check_page(self, form_type: str, page: int):
        definition = get_form_definition(form_type)
        if not definition.has_page(page):
            raise InvalidPageError(
                f'Page {page} does not exist on {form_type}',
                details={'form_type': form_type, 'page': page},
            )
        return definition

    def _load(self, form_type: str, record_id: str) -> FormRecord:
        record = db.session.get(FormRecord, record_id)
        if record is None or record.form_type != form_type:
            raise RecordNotFoundError(
                f'Record {record_id} not found',
                details={'form_type': form_type, 'record_id': record_id},
            )
        return record

    def create(self, form_type: str, payload: Mapping[str, Any], page: int = 1) -> Dict[str, Any]:
        """
        Create a record from the first page's payload.

        Returns:
            {'id': ..., 'pageCompletionStatus': {...}}
        """
        self._check_page(form_type, page)

        record = FormRecord(form_type=form_type)
        record.set_payload(dict(payload))
        record.set_page_keys({str(page): sorted(payload)})
        record.mark_page_completed(page)

        db.session.add(record)
        db.session.commit()

        current_app.logger.info(f'Created {form_type} record {record.id}')
        log_record_created(form_type, record.id, page)

        return {'id': record.id, 'pageCompletionStatus': record.get_page_completion()}

    def get(self, form_type: str, record_id: str) -> Dict[str, Any]:
        return self._load(form_type, record_id).to_record()

    def update(self, form_type: str, record_id: str, page: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Replace the keys one page owns.

        Keys the page wrote last time but are absent now are removed, so a
        field cleared by the user is cleared in the record too. Editing a
        submitted record returns it to draft.
        """
        self._check_page(form_type, page)
        record = self._load(form_type, record_id)

        stored = record.get_payload()
        page_keys = record.get_page_keys()
        for key in page_keys.get(str(page), []):
            stored.pop(key, None)
        stored.update(payload)
        page_keys[str(page)] = sorted(payload)

        record.set_payload(stored)
        record.set_page_keys(page_keys)
        record.mark_page_completed(page)
        if record.is_submitted:
            record.status = RecordStatus.DRAFT.value
            record.submitted_at = None

        db.session.commit()

        log_record_updated(form_type, record.id, page, list(payload))

        return {'pageCompletionStatus': record.get_page_completion()}

    def submit(self, form_type: str, record_id: str):
        """
        Mark a draft record submitted.

        Raises:
            RecordConflictError: If the record is not a draft
            RecordValidationError: If the stored record does not validate as a whole
        """
        record = self._load(form_type, record_id)
        if record.status != RecordStatus.DRAFT.value:
            raise RecordConflictError(
                f'Record {record_id} has already been submitted',
                details={'status': record.status},
            )

        definition = get_form_definition(form_type)
        snapshot = definition.apply_derived(definition.from_backend(record.to_record()))
        result = definition.validate(snapshot)
        if not result.is_valid:
            log_submit_rejected(form_type, record.id, result.errors)
            raise RecordValidationError('Record failed validation', errors=result.errors)

        record.status = RecordStatus.SUBMITTED.value
        record.submitted_at = utcnow()
        db.session.commit()

        current_app.logger.info(f'Submitted {form_type} record {record.id}')
        log_record_submitted(form_type, record.id)


class StoreBackend(RecordBackend):
    """
    Async adapter over RecordStore.

    Each call runs in a worker thread (asyncio.to_thread) inside its own
    application context; database work never runs on the event loop.
    """

    def __init__(self, app, form_type: str, store: Optional[RecordStore] = None):
        get_form_definition(form_type)
        self.app = app
        self.form_type = form_type
        self.store = store or RecordStore()

    def _run(self, method, *args):
        with self.app.app_context():
            try:
                return method(self.form_type, *args)
            except Exception:
                db.session.rollback()
                raise

    async def _call(self, method, *args):
        return await asyncio.to_thread(self._run, method, *args)

    async def create(self, payload: Mapping[str, Any], page: int = 1) -> Dict[str, Any]:
        return await self._call(self.store.create, payload, page)

    async def get(self, record_id: str) -> Dict[str, Any]:
        return await self._call(self.store.get, record_id)

    async def update(self, record_id: str, page: int, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._call(self.store.update, record_id, page, payload)

    async def submit(self, record_id: str) -> None:
        await self._call(self.store.submit, record_id)
