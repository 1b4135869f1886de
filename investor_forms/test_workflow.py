"""
Tests for the save/submit workflow.

Backends are in-memory fakes that record every call; the retry sleep is
injected so backoff delays are observed instead of waited for.
"""

import asyncio

import pytest

from investor_forms.accreditation_form import DEFINITION as ACCREDITATION
from investor_forms.additional_holder_form import DEFINITION as HOLDER
from investor_forms.backend import RecordBackend, RecordStore
from investor_forms.errors import RecordNotFoundError, TransientPersistenceError
from investor_forms.workflow import (
    BUSY, INVALID, LOAD_FAILED, NOT_SAVED, READ_ONLY, SAVE_FAILED, SUBMIT_FAILED,
    CREATE_FIRST_MESSAGE, FIX_BEFORE_CONTINUE_MESSAGE, FIX_BEFORE_SUBMIT_MESSAGE,
    LOAD_FAILED_MESSAGE, SAVE_FAILED_MESSAGE, SAVE_FIRST_MESSAGE, SUBMIT_FAILED_MESSAGE,
    FormSession, SaveRetryPolicy, SaveStatus,
)


class FakeBackend(RecordBackend):
    """Records calls; fails the first `failures` create/update calls with `error`."""

    def __init__(self, failures=0, error=None, record=None):
        self.calls = []
        self.failures = failures
        self.error = error or TransientPersistenceError('Service unavailable')
        self.record = record
        self.submit_error = None
        self.get_error = None
        self.gate = None
        self.submit_gate = None
        self.completion = {}

    async def _write(self, name, *args):
        self.calls.append((name, *args))
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise self.error

    async def create(self, payload, page=1):
        await self._write('create', page, dict(payload))
        self.completion[str(page)] = {'completed': True}
        return {'id': 'rec-1', 'pageCompletionStatus': dict(self.completion)}

    async def get(self, record_id):
        self.calls.append(('get', record_id))
        if self.get_error is not None:
            raise self.get_error
        return self.record

    async def update(self, record_id, page, payload):
        await self._write('update', record_id, page, dict(payload))
        self.completion[str(page)] = {'completed': True}
        return {'pageCompletionStatus': dict(self.completion)}

    async def submit(self, record_id):
        self.calls.append(('submit', record_id))
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.submit_error is not None:
            raise self.submit_error

    def names(self):
        return [call[0] for call in self.calls]


def recording_sleep():
    delays = []

    async def sleep(seconds):
        delays.append(seconds)

    return sleep, delays


def make_session(definition, backend, **kwargs):
    notices = []
    sleep, delays = recording_sleep()
    session = FormSession(
        definition, backend,
        notify=lambda level, message: notices.append((level, message)),
        sleep=sleep,
        **kwargs
    )
    return session, notices, delays


def fill(session, values):
    for field_id, value in values.items():
        assert session.update_field(field_id, value).ok


def run(coro):
    return asyncio.run(coro)


class TestSave:
    def test_first_save_creates_then_updates(self, accreditation_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)

        result = run(session.save())
        assert result.ok
        assert session.record_id == 'rec-1'
        assert session.save_state.status == SaveStatus.SUCCESS
        assert session.save_state.saved_at is not None
        assert notices == [('success', 'Form saved successfully')]

        run(session.save())
        assert backend.names() == ['create', 'update']
        assert backend.calls[1][1] == 'rec-1'

    def test_payload_is_backend_shaped(self, accreditation_snapshot):
        backend = FakeBackend()
        session, _, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        run(session.save())
        _, page, payload = backend.calls[0]
        assert page == 1
        assert payload['rrName'] == 'Alex Broker'
        assert payload['hasJointOwner'] is False

    def test_retries_with_exponential_backoff(self, accreditation_snapshot):
        backend = FakeBackend(failures=2)
        session, notices, delays = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)

        result = run(session.save())
        assert result.ok
        assert backend.names() == ['create', 'create', 'create']
        assert delays == [pytest.approx(0.3), pytest.approx(0.6)]
        assert notices == [('success', 'Form saved successfully')]

    def test_exhausted_retries(self, accreditation_snapshot):
        backend = FakeBackend(failures=5)
        session, notices, delays = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)

        result = run(session.save())
        assert not result.ok
        assert result.reason == SAVE_FAILED
        assert result.error == SAVE_FAILED_MESSAGE
        assert len(backend.calls) == 3
        assert len(delays) == 2
        assert session.record_id is None
        assert session.save_state.status == SaveStatus.ERROR
        assert notices == [('error', SAVE_FAILED_MESSAGE)]

    def test_custom_retry_policy(self, accreditation_snapshot):
        backend = FakeBackend(failures=5)
        session, _, delays = make_session(
            ACCREDITATION, backend, retry_policy=SaveRetryPolicy(max_attempts=2, backoff_seconds=1.0),
        )
        fill(session, accreditation_snapshot)
        assert not run(session.save()).ok
        assert len(backend.calls) == 2
        assert delays == [pytest.approx(1.0)]

    def test_non_retryable_error_not_retried(self, accreditation_snapshot):
        backend = FakeBackend(failures=1, error=RecordNotFoundError('Record rec-1 not found'))
        session, _, delays = make_session(ACCREDITATION, backend, record_id='rec-1')
        fill(session, accreditation_snapshot)

        result = run(session.save())
        assert result.reason == SAVE_FAILED
        assert backend.names() == ['update']
        assert delays == []

    def test_concurrent_save_is_ignored(self, accreditation_snapshot):
        backend = FakeBackend()
        session, _, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)

        async def scenario():
            backend.gate = asyncio.Event()
            first = asyncio.ensure_future(session.save())
            await asyncio.sleep(0)
            second = await session.save()
            backend.gate.set()
            return await first, second

        first, second = run(scenario())
        assert first.ok
        assert second.reason == BUSY
        assert backend.names() == ['create']
        assert not session.is_saving

    def test_manual_save_ignored_while_submitting(self, accreditation_snapshot):
        backend = FakeBackend()
        session, _, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        run(session.save())

        async def scenario():
            backend.submit_gate = asyncio.Event()
            submit = asyncio.ensure_future(session.handle_submit())
            while backend.names()[-1] != 'submit':
                await asyncio.sleep(0)
            assert session.is_submitting
            manual = await session.handle_manual_save()
            after_next = await session.handle_next()
            backend.submit_gate.set()
            return await submit, manual, after_next

        submitted, manual, after_next = run(scenario())
        assert submitted.ok
        assert manual.reason == BUSY
        assert after_next.reason == BUSY
        assert backend.names() == ['create', 'update', 'submit']
        assert session.read_only

    def test_later_page_needs_record(self, holder_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(HOLDER, backend)
        fill(session, holder_snapshot)
        session.current_page = 2

        result = run(session.save())
        assert result.reason == SAVE_FAILED
        assert result.error == CREATE_FIRST_MESSAGE
        assert backend.calls == []
        assert notices == [('error', CREATE_FIRST_MESSAGE)]

    def test_multi_page_notice(self, holder_snapshot):
        session, notices, _ = make_session(HOLDER, FakeBackend())
        fill(session, holder_snapshot)
        run(session.handle_manual_save())
        assert notices == [('success', 'Page 1 saved successfully')]


class TestNavigation:
    def test_next_blocked_by_page_errors(self):
        backend = FakeBackend()
        session, notices, _ = make_session(HOLDER, backend)

        result = run(session.handle_next())
        assert result.reason == INVALID
        assert 'name' in result.data['errors']
        assert session.current_page == 1
        assert backend.calls == []
        assert notices == [('error', FIX_BEFORE_CONTINUE_MESSAGE)]
        assert session.get_field_error('name') == 'This field is required'

    def test_next_saves_silently_and_advances(self, holder_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(HOLDER, backend)
        fill(session, holder_snapshot)

        result = run(session.handle_next())
        assert result.ok
        assert session.current_page == 2
        assert session.record_id == 'rec-1'
        assert session.completed_pages == {1}
        assert notices == []
        assert session.save_state.status == SaveStatus.IDLE
        assert session.save_state.saved_at is not None

        _, page, payload = backend.calls[0]
        assert page == 1
        assert 'addresses' in payload
        assert 'signature' not in payload

    def test_next_on_last_page_saves_that_page(self, holder_snapshot):
        backend = FakeBackend()
        session, _, _ = make_session(HOLDER, backend)
        fill(session, holder_snapshot)
        run(session.handle_next())
        run(session.handle_next())
        assert session.current_page == 2
        assert backend.calls[1][0] == 'update'
        assert backend.calls[1][2] == 2
        assert 'signature' in backend.calls[1][3]

    def test_next_reports_save_failure(self, holder_snapshot):
        session, notices, _ = make_session(HOLDER, FakeBackend(failures=3))
        fill(session, holder_snapshot)
        result = run(session.handle_next())
        assert result.reason == SAVE_FAILED
        assert session.current_page == 1
        assert notices == [('error', SAVE_FAILED_MESSAGE)]

    def test_previous(self, holder_snapshot):
        session, _, _ = make_session(HOLDER, FakeBackend())
        fill(session, holder_snapshot)
        run(session.handle_next())
        assert session.handle_previous().data == {'page': 1}
        assert session.handle_previous().data == {'page': 1}

    def test_go_to_page(self, holder_snapshot):
        session, _, _ = make_session(HOLDER, FakeBackend())
        assert session.go_to_page(2).reason == INVALID
        assert session.go_to_page(3).reason == INVALID

        fill(session, holder_snapshot)
        run(session.handle_next())
        assert session.handle_previous().ok
        assert session.go_to_page(2).reason == INVALID

        session.current_page = 2
        run(session.handle_next())
        session.handle_previous()
        assert session.completed_pages == {1, 2}
        assert session.go_to_page(2).ok
        assert session.current_page == 2


class TestSubmit:
    def test_submit_without_record(self, accreditation_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)

        result = run(session.handle_submit())
        assert result.reason == NOT_SAVED
        assert result.error == SAVE_FIRST_MESSAGE
        assert backend.calls == []
        assert notices == [('warning', SAVE_FIRST_MESSAGE)]

    def test_submit_with_errors_jumps_to_first_error_page(self, holder_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(HOLDER, backend, record_id='rec-1')
        del holder_snapshot['ssn']
        fill(session, holder_snapshot)
        session.current_page = 2

        result = run(session.handle_submit())
        assert result.reason == INVALID
        assert session.current_page == 1
        assert session.get_field_error('ssn') == 'SSN is required when Person is selected'
        assert backend.calls == []
        assert notices == [('error', FIX_BEFORE_SUBMIT_MESSAGE)]

    def test_submit_saves_then_submits(self, accreditation_snapshot):
        backend = FakeBackend()
        session, notices, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        run(session.save())

        result = run(session.handle_submit())
        assert result.ok
        assert backend.names() == ['create', 'update', 'submit']
        assert session.read_only
        assert notices[-1] == ('success', 'Form submitted successfully')

    def test_read_only_after_submit(self, accreditation_snapshot):
        backend = FakeBackend()
        session, _, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        run(session.save())
        run(session.handle_submit())

        assert session.update_field('rr_no', 'B2').reason == READ_ONLY
        assert session.snapshot['rr_no'] == 'A123'
        assert run(session.save()).reason == READ_ONLY
        assert run(session.handle_submit()).reason == READ_ONLY
        assert session.field_props('rr_no')['disabled'] is True
        assert backend.names().count('submit') == 1

    def test_submit_failure_is_not_retried(self, accreditation_snapshot):
        backend = FakeBackend()
        backend.submit_error = RuntimeError('boom')
        session, notices, delays = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        run(session.save())

        result = run(session.handle_submit())
        assert result.reason == SUBMIT_FAILED
        assert result.error == SUBMIT_FAILED_MESSAGE
        assert backend.names().count('submit') == 1
        assert delays == []
        assert not session.read_only
        assert not session.is_submitting
        assert notices[-1] == ('error', SUBMIT_FAILED_MESSAGE)


class TestLoad:
    RECORD = {
        'id': 'rec-9',
        'status': 'submitted',
        'rrName': 'Alex Broker',
        'rrNo': 'A123',
        'customerNames': 'Jane and John Doe',
        'hasJointOwner': True,
        'pageCompletionStatus': {'1': {'completed': True, 'completedAt': '2024-06-01T10:00:00.000Z'}},
    }

    def test_load_replaces_state(self):
        backend = FakeBackend(record=dict(self.RECORD))
        session, _, _ = make_session(ACCREDITATION, backend)
        session.handle_blur('rr_name')

        result = run(session.load('rec-9'))
        assert result.ok
        assert session.record_id == 'rec-9'
        assert session.snapshot['customer_names'] == 'Jane and John Doe'
        assert session.snapshot['has_joint_owner'] is True
        assert session.completed_pages == {1}
        assert session.read_only
        assert session.errors == {}

    def test_load_failure_keeps_state(self, accreditation_snapshot):
        backend = FakeBackend()
        backend.get_error = TransientPersistenceError('Service unavailable')
        session, notices, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        before = session.snapshot

        result = run(session.load('rec-9'))
        assert result.reason == LOAD_FAILED
        assert result.error == LOAD_FAILED_MESSAGE
        assert session.snapshot == before
        assert session.record_id is None
        assert notices == [('error', LOAD_FAILED_MESSAGE)]

    def test_malformed_completion_status_fails_load(self, accreditation_snapshot):
        record = dict(self.RECORD, pageCompletionStatus={'first': {'completed': True}})
        backend = FakeBackend(record=record)
        session, notices, _ = make_session(ACCREDITATION, backend)
        fill(session, accreditation_snapshot)
        before = session.snapshot

        result = run(session.load('rec-9'))
        assert result.reason == LOAD_FAILED
        assert session.snapshot == before
        assert session.record_id is None
        assert session.completed_pages == set()
        assert not session.read_only
        assert notices == [('error', LOAD_FAILED_MESSAGE)]

    def test_missing_record_body_fails_load(self):
        backend = FakeBackend(record=None)
        session, _, _ = make_session(ACCREDITATION, backend)

        result = run(session.load('rec-9'))
        assert result.reason == LOAD_FAILED
        assert session.record_id is None


class TestFieldProps:
    def test_blur_then_change_clears_error(self):
        session, _, _ = make_session(ACCREDITATION, FakeBackend())
        assert session.handle_blur('rr_name') == 'RR Name is required'
        assert session.validation.is_touched('rr_name')
        session.update_field('rr_name', 'Alex Broker')
        assert session.get_field_error('rr_name') is None

    def test_change_does_not_validate_clean_field(self):
        session, _, _ = make_session(ACCREDITATION, FakeBackend())
        session.update_field('rr_name', 'x')
        assert session.errors == {}

    def test_derived_joint_owner(self):
        session, _, _ = make_session(ACCREDITATION, FakeBackend())
        props = session.field_props('joint_account_owner_signature')
        assert props['visible'] is False and props['required'] is False

        session.field_props('customer_names')['on_change']('Jane & John Doe')
        props = session.field_props('joint_account_owner_signature')
        assert props['visible'] is True and props['required'] is True

    def test_props(self):
        session, _, _ = make_session(ACCREDITATION, FakeBackend())
        props = session.field_props('rr_name')
        assert props['field'].label == 'RR Name'
        assert props['value'] is None
        assert props['disabled'] is False
        assert props['on_blur']() == 'RR Name is required'
        assert session.field_props('rr_name')['error'] == 'RR Name is required'

    def test_unknown_field(self):
        session, _, _ = make_session(ACCREDITATION, FakeBackend())
        with pytest.raises(KeyError):
            session.field_props('nope')

    def test_page_fields_only_visible(self, holder_snapshot):
        session, _, _ = make_session(HOLDER, FakeBackend())
        field_ids = [props['field'].id for props in session.page_fields()]
        assert 'name' in field_ids
        assert 'ssn' not in field_ids and 'signature' not in field_ids

        session.update_field('person_entity', ['Person'])
        field_ids = [props['field'].id for props in session.page_fields()]
        assert 'ssn' in field_ids


class TestStoreBackedSession:
    def test_full_flow(self, app, holder_snapshot):
        sleep, _ = recording_sleep()
        session = FormSession.for_app(app, 'additional_holder', sleep=sleep)
        fill(session, holder_snapshot)

        assert run(session.handle_next()).ok
        assert session.current_page == 2
        result = run(session.handle_submit())
        assert result.ok, result.error

        with app.app_context():
            record = RecordStore().get('additional_holder', session.record_id)
        assert record['status'] == 'submitted'
        assert record['name'] == 'Jane Doe'
        assert record['signature'] == 'Jane Q. Doe (signed)'
        assert set(record['pageCompletionStatus']) == {'1', '2'}

        reopened = FormSession.for_app(app, 'additional_holder', sleep=sleep)
        assert run(reopened.load(session.record_id)).ok
        assert reopened.read_only
        assert reopened.snapshot['legal_city'] == 'Denver'

    def test_retry_policy_from_config(self, app):
        session = FormSession.for_app(app, 'accreditation')
        assert session.retry_policy == SaveRetryPolicy(max_attempts=3, backoff_seconds=0.0)

    def test_unknown_record(self, app):
        session = FormSession.for_app(app, 'accreditation')
        result = run(session.load('missing'))
        assert result.reason == LOAD_FAILED
