"""
Save/submit workflow for one form instance.

Lifecycle:
    new (no record id) -> created (first save adopts the server id)
    -> saved page by page -> submitted (read-only)

Saves retry transient backend failures with exponential backoff
(0.3s, 0.6s, 1.2s by default). Errors that cannot succeed on retry are
raised straight through to the workflow boundary, where every failure is
turned into an OperationResult and a notification instead of an exception.
Only one save runs at a time. A save or submit triggered while a save or a
submit is in flight is ignored; the save inside a submit is the exception.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set

from tenacity import (
    AsyncRetrying, RetryCallState, retry_if_not_exception_type, stop_after_attempt, wait_exponential,
)

from investor_forms.definitions import FormDefinition
from investor_forms.errors import (
    NON_RETRYABLE_ERRORS, FormError, LoadFailure, PersistedSaveFailure, PreconditionError,
)
from investor_forms.utils import utcnow
from investor_forms.validation_state import ValidationState

logger = logging.getLogger(__name__)


# Outcome reasons
BUSY = 'busy'
NOT_SAVED = 'not_saved'
INVALID = 'invalid'
SAVE_FAILED = 'save_failed'
SUBMIT_FAILED = 'submit_failed'
READ_ONLY = 'read_only'
LOAD_FAILED = 'load_failed'

SAVE_FIRST_MESSAGE = 'Please save the form first before submitting.'
FIX_BEFORE_SUBMIT_MESSAGE = 'Please fix validation errors before submitting.'
FIX_BEFORE_CONTINUE_MESSAGE = 'Please fix validation errors before continuing.'
SAVE_FAILED_MESSAGE = 'Failed to save page. Please try again.'
SUBMIT_FAILED_MESSAGE = 'Failed to submit form. Please try again.'
LOAD_FAILED_MESSAGE = 'Failed to load form data'
CREATE_FIRST_MESSAGE = 'Please complete Page 1 to create the record before saving other pages.'
READ_ONLY_MESSAGE = 'This form has been submitted and can no longer be edited.'

LOG_LEVELS = {
    'success': logging.INFO,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class SaveStatus(str, Enum):
    IDLE = 'idle'
    SAVING = 'saving'
    SUCCESS = 'success'
    ERROR = 'error'


@dataclass
class SaveState:
    status: SaveStatus = SaveStatus.IDLE
    error: Optional[str] = None
    saved_at: Optional[Any] = None


@dataclass
class OperationResult:
    """Outcome of a workflow operation; failures carry a reason tag and a message."""
    ok: bool
    reason: Optional[str] = None
    error: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.ok,
            'reason': self.reason,
            'error': self.error,
            'data': self.data,
        }


@dataclass(frozen=True)
class SaveRetryPolicy:
    """Attempt budget and base delay of the save retry loop."""
    max_attempts: int = 3
    backoff_seconds: float = 0.3

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'SaveRetryPolicy':
        return cls(
            max_attempts=int(config.get('SAVE_MAX_ATTEMPTS', cls.max_attempts)),
            backoff_seconds=float(config.get('SAVE_BACKOFF_SECONDS', cls.backoff_seconds)),
        )

    def retrying(self, sleep: Callable[[float], Awaitable[None]]) -> AsyncRetrying:
        def log_retry(retry_state: RetryCallState) -> None:
            exception = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                'Attempt %d/%d failed: %s. Retrying in %.1fs...',
                retry_state.attempt_number,
                self.max_attempts,
                exception,
                retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, min=self.backoff_seconds),
            retry=retry_if_not_exception_type(NON_RETRYABLE_ERRORS),
            before_sleep=log_retry,
            reraise=True,
            sleep=sleep,
        )


class FormSession:
    """
    Context object for one form instance.

    Owns the snapshot, validation state, current page, completed pages and
    save state. The render layer reads field_props/page_fields and calls
    update_field, handle_blur, handle_manual_save, handle_next,
    handle_previous and handle_submit.
    """

    def __init__(
        self,
        form: FormDefinition,
        backend,
        record_id: Optional[str] = None,
        notify: Optional[Callable[[str, str], None]] = None,
        retry_policy: Optional[SaveRetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.form = form
        self.backend = backend
        self.record_id = record_id
        self.retry_policy = retry_policy or SaveRetryPolicy()
        self._notify = notify
        self._sleep = sleep

        self._snapshot: Dict[str, Any] = form.apply_derived({})
        self.validation = ValidationState(form, lambda: self._snapshot)
        self.current_page = form.pages[0] if form.pages else 1
        self.completed_pages: Set[int] = set()
        self.save_state = SaveState()
        self.is_saving = False
        self.is_submitting = False
        self.read_only = False

    @classmethod
    def for_app(cls, app, form_type: str, **kwargs) -> 'FormSession':
        """Session backed by the application's own record store."""
        from investor_forms.backend import StoreBackend
        from investor_forms.registry import get_form_definition

        kwargs.setdefault('retry_policy', SaveRetryPolicy.from_config(app.config))
        return cls(get_form_definition(form_type), StoreBackend(app, form_type), **kwargs)

    @property
    def snapshot(self) -> Dict[str, Any]:
        return dict(self._snapshot)

    @property
    def errors(self) -> Dict[str, str]:
        return self.validation.errors

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    def get_field_error(self, field_id: str) -> Optional[str]:
        return self.validation.get_field_error(field_id)

    def _emit(self, level: str, message: str):
        logger.log(LOG_LEVELS.get(level, logging.INFO), '[%s] %s', self.form.form_type, message)
        if self._notify is not None:
            self._notify(level, message)

    # Editing

    def update_field(self, field_id: str, value: Any) -> OperationResult:
        """Replace the snapshot with one field changed and derived fields recomputed."""
        if self.read_only:
            return OperationResult(False, READ_ONLY, READ_ONLY_MESSAGE)

        snapshot = dict(self._snapshot)
        snapshot[field_id] = value
        self._snapshot = self.form.apply_derived(snapshot)

        # Re-check a field that is already flagged so the message clears once fixed
        if self.validation.has_field_error(field_id):
            self.validation.validate_field(field_id, value)
        return OperationResult(True)

    def handle_blur(self, field_id: str) -> Optional[str]:
        self.validation.set_touched(field_id)
        return self.validation.validate_field(field_id, self._snapshot.get(field_id))

    # Persistence

    @staticmethod
    def _completed_pages(page_completion: Mapping[str, Any]) -> Set[int]:
        return {
            int(page) for page, status in page_completion.items()
            if isinstance(status, Mapping) and status.get('completed')
        }

    def _apply_completion(self, page_completion: Optional[Mapping[str, Any]]):
        if page_completion is not None:
            self.completed_pages = self._completed_pages(page_completion)

    async def _with_retry(self, operation: Callable[[], Awaitable[Dict[str, Any]]], description: str):
        attempts = 0
        try:
            async for attempt in self.retry_policy.retrying(self._sleep):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await operation()
        except NON_RETRYABLE_ERRORS:
            raise
        except Exception as e:
            logger.error('All %d attempts failed. Last error: %s', attempts, e)
            raise PersistedSaveFailure(
                f'{description} failed after {attempts} attempts', attempts=attempts, last_error=e
            ) from e
        return result

    async def _persist(self, page: int) -> Dict[str, Any]:
        payload = self.form.page_payload(self._snapshot, page)

        if self.record_id is None:
            if page != self.form.pages[0]:
                raise PreconditionError(CREATE_FIRST_MESSAGE, reason=NOT_SAVED)
            echo = await self._with_retry(lambda: self.backend.create(payload, page), 'Create')
            self.record_id = echo['id']
            logger.info('Created %s record %s', self.form.form_type, self.record_id)
        else:
            record_id = self.record_id
            echo = await self._with_retry(lambda: self.backend.update(record_id, page, payload), 'Update')

        self._apply_completion(echo.get('pageCompletionStatus'))
        return echo

    async def save(self, silent: bool = False) -> OperationResult:
        """
        Persist the current page (or the whole form for single-page forms).

        Args:
            silent: Leave the save indicator alone and do not notify

        Returns:
            OperationResult; reason is busy, read_only or save_failed on failure
        """
        if self.read_only:
            return OperationResult(False, READ_ONLY, READ_ONLY_MESSAGE)
        # The silent save inside handle_submit runs while is_submitting is set
        if self.is_saving or (self.is_submitting and not silent):
            return OperationResult(False, BUSY)

        page = self.current_page
        self.is_saving = True
        if not silent:
            self.save_state = SaveState(SaveStatus.SAVING, saved_at=self.save_state.saved_at)

        try:
            echo = await self._persist(page)
        except Exception as e:
            message = e.message if isinstance(e, PreconditionError) else SAVE_FAILED_MESSAGE
            logger.error('Save of %s page %d failed: %s', self.form.form_type, page, e)
            if not silent:
                self.save_state = SaveState(SaveStatus.ERROR, error=message, saved_at=self.save_state.saved_at)
                self._emit('error', message)
            return OperationResult(False, SAVE_FAILED, message)
        finally:
            self.is_saving = False

        saved_at = utcnow()
        if silent:
            self.save_state.saved_at = saved_at
        else:
            self.save_state = SaveState(SaveStatus.SUCCESS, saved_at=saved_at)
            if self.form.is_multi_page:
                self._emit('success', f'Page {page} saved successfully')
            else:
                self._emit('success', 'Form saved successfully')

        return OperationResult(True, data={'id': self.record_id, 'response': echo})

    async def handle_manual_save(self) -> OperationResult:
        return await self.save()

    # Navigation

    async def handle_next(self) -> OperationResult:
        """Validate and silently save the current page, then advance."""
        if self.is_saving or self.is_submitting:
            return OperationResult(False, BUSY)

        result = self.validation.validate_page(self.current_page)
        if not result.is_valid:
            self._emit('error', FIX_BEFORE_CONTINUE_MESSAGE)
            return OperationResult(False, INVALID, FIX_BEFORE_CONTINUE_MESSAGE, {'errors': result.errors})

        if not self.read_only:
            saved = await self.save(silent=True)
            if not saved.ok:
                self._emit('error', saved.error)
                return saved

        if self.current_page < self.form.pages[-1]:
            self.current_page += 1
        return OperationResult(True, data={'page': self.current_page})

    def handle_previous(self) -> OperationResult:
        if self.current_page > self.form.pages[0]:
            self.current_page -= 1
        return OperationResult(True, data={'page': self.current_page})

    def go_to_page(self, page: int) -> OperationResult:
        """Jump to an earlier page or to one the server reports as completed."""
        if not self.form.has_page(page):
            return OperationResult(False, INVALID, f'Page {page} does not exist')
        if page > self.current_page and page not in self.completed_pages:
            return OperationResult(False, INVALID, f'Please complete the previous pages before opening page {page}')
        self.current_page = page
        return OperationResult(True, data={'page': page})

    # Submission

    async def handle_submit(self) -> OperationResult:
        """
        Submit the record.

        Refused without a backend call when the record was never created or
        the whole form does not validate. Otherwise the latest snapshot is
        saved silently first, then the backend submit runs.
        """
        if self.is_saving or self.is_submitting:
            return OperationResult(False, BUSY)
        if self.read_only:
            return OperationResult(False, READ_ONLY, READ_ONLY_MESSAGE)

        if self.record_id is None:
            self._emit('warning', SAVE_FIRST_MESSAGE)
            return OperationResult(False, NOT_SAVED, SAVE_FIRST_MESSAGE)

        result = self.validation.validate_all()
        if not result.is_valid:
            first_page = self.form.schema.first_page_with_errors(result.errors)
            if first_page is not None:
                self.current_page = first_page
            self._emit('error', FIX_BEFORE_SUBMIT_MESSAGE)
            return OperationResult(False, INVALID, FIX_BEFORE_SUBMIT_MESSAGE, {'errors': result.errors})

        self.is_submitting = True
        try:
            saved = await self.save(silent=True)
            if not saved.ok:
                self._emit('error', saved.error)
                return saved
            await self.backend.submit(self.record_id)
        except Exception as e:
            message = e.message if isinstance(e, FormError) else SUBMIT_FAILED_MESSAGE
            logger.error('Submit of %s record %s failed: %s', self.form.form_type, self.record_id, e)
            self._emit('error', message)
            return OperationResult(False, SUBMIT_FAILED, message)
        finally:
            self.is_submitting = False

        self.read_only = True
        self._emit('success', 'Form submitted successfully')
        return OperationResult(True, data={'id': self.record_id})

    # Loading

    async def load(self, record_id: str) -> OperationResult:
        """Replace the session state with a stored record; on failure keep the current state."""
        try:
            record = await self.backend.get(record_id)
            snapshot = self.form.apply_derived(self.form.from_backend(record))
            completion = record.get('pageCompletionStatus')
            completed_pages = self._completed_pages(completion) if completion is not None else None
        except Exception as e:
            failure = LoadFailure(LOAD_FAILED_MESSAGE, details={'record_id': record_id, 'error': str(e)})
            logger.error('Load of %s record %s failed: %s', self.form.form_type, record_id, e)
            self._emit('error', failure.message)
            return OperationResult(False, LOAD_FAILED, failure.message, failure.to_dict())

        self.record_id = record.get('id', record_id)
        self._snapshot = snapshot
        if completed_pages is not None:
            self.completed_pages = completed_pages
        self.read_only = record.get('status') == 'submitted'
        self.validation.clear_errors()
        return OperationResult(True, data={'id': self.record_id})

    # Render layer

    def field_props(self, field_id: str) -> Dict[str, Any]:
        """
        Everything the render layer needs for one field.

        Raises:
            KeyError: If the field is not declared in the form schema
        """
        descriptor = self.form.schema.descriptor(field_id)
        if descriptor is None:
            raise KeyError(field_id)

        requirement = self.form.get_requirement(field_id, self._snapshot)
        return {
            'field': descriptor,
            'value': self._snapshot.get(field_id),
            'error': self.validation.get_field_error(field_id),
            'errors': self.validation.errors,
            'visible': self.form.is_visible(field_id, self._snapshot),
            'required': requirement.required,
            'disabled': self.read_only or self.is_saving or self.is_submitting,
            'on_change': partial(self.update_field, field_id),
            'on_blur': partial(self.handle_blur, field_id),
        }

    def page_fields(self, page: Optional[int] = None) -> List[Dict[str, Any]]:
        """Props of the visible value-holding fields of a page (default: current page)."""
        page = self.current_page if page is None else page
        return [
            self.field_props(field_id)
            for field_id in self.form.schema.field_ids(page)
            if self.form.is_visible(field_id, self._snapshot)
        ]
