"""
Flask routes for the investor forms record API.

All endpoints live under /api/forms/<form_type> and answer with a JSON
envelope: {'ok': bool, 'data' | 'errors' | 'error': ...}.
"""

from flask import Blueprint, request, jsonify, current_app

from investor_forms import db
from investor_forms.audit_logger import log_validation_failed
from investor_forms.backend import RecordStore
from investor_forms.errors import (
    InvalidPageError, RecordConflictError, RecordNotFoundError, RecordValidationError,
)
from investor_forms.registry import get_form_definition
from investor_forms.security import rate_limit, sanitize_payload


api_bp = Blueprint('api', __name__, url_prefix='/api')

store = RecordStore()


def _bad_request(message):
    return jsonify({'ok': False, 'error': message}), 400


def _not_found(message='Not found'):
    return jsonify({'ok': False, 'error': message}), 404


def _json_body():
    """Request JSON as a dict, or None when missing or not an object."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return None
    return body


def _page_param(value, default=1):
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _store_error_response(error):
    """Translate record store errors into API responses."""
    if isinstance(error, RecordNotFoundError):
        return _not_found(error.message)
    if isinstance(error, InvalidPageError):
        return _bad_request(error.message)
    if isinstance(error, RecordConflictError):
        return jsonify({'ok': False, 'error': error.message}), 409
    if isinstance(error, RecordValidationError):
        return jsonify({'ok': False, 'error': error.message, 'errors': error.errors}), 422
    raise error


@api_bp.route('/forms/<form_type>/validate', methods=['POST'])
@rate_limit('validate')
def api_validate(form_type):
    """
    Validate a form snapshot.

    Body:
        {'data': {field_id: value, ...}, 'page': optional page number}

    Returns:
        200 with no errors, 422 with field errors
    """
    try:
        definition = get_form_definition(form_type)
    except ValueError:
        return _not_found(f'Unknown form type: {form_type}')

    try:
        body = _json_body()
        if body is None or not isinstance(body.get('data'), dict):
            return _bad_request('Request body must contain a data object')

        page = body.get('page')
        if page is not None and (_page_param(page) is None or not definition.has_page(page)):
            return _bad_request(f'Page {page} does not exist on {form_type}')

        snapshot = definition.apply_derived(sanitize_payload(body['data']))
        result = definition.validate(snapshot, page=page)

        if result.is_valid:
            return jsonify(result.to_dict()), 200

        log_validation_failed(form_type, result.errors, page=page)
        return jsonify(result.to_dict()), 422

    except Exception as e:
        current_app.logger.error(f'Validation error: {str(e)}')
        return jsonify({'ok': False, 'error': 'Internal validation error'}), 500


@api_bp.route('/forms/<form_type>', methods=['POST'])
@rate_limit('save')
def api_create(form_type):
    """Create a record from a page payload. Body: {'payload': {...}, 'page': optional}."""
    try:
        get_form_definition(form_type)
    except ValueError:
        return _not_found(f'Unknown form type: {form_type}')

    body = _json_body()
    if body is None or not isinstance(body.get('payload'), dict):
        return _bad_request('Request body must contain a payload object')
    page = _page_param(body.get('page'))
    if page is None:
        return _bad_request('Page must be an integer')

    try:
        data = store.create(form_type, sanitize_payload(body['payload']), page=page)
        return jsonify({'ok': True, 'data': data}), 201
    except (InvalidPageError, RecordConflictError, RecordNotFoundError, RecordValidationError) as e:
        db.session.rollback()
        return _store_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Create error: {str(e)}')
        return jsonify({'ok': False, 'error': 'Failed to create record'}), 500


@api_bp.route('/forms/<form_type>/<record_id>', methods=['GET'])
@rate_limit('read')
def api_get(form_type, record_id):
    """Fetch a stored record."""
    try:
        get_form_definition(form_type)
    except ValueError:
        return _not_found(f'Unknown form type: {form_type}')

    try:
        return jsonify({'ok': True, 'data': store.get(form_type, record_id)}), 200
    except RecordNotFoundError as e:
        return _store_error_response(e)


@api_bp.route('/forms/<form_type>/<record_id>', methods=['PUT'])
@api_bp.route('/forms/<form_type>/<record_id>/pages/<int:page>', methods=['PUT'])
@rate_limit('save')
def api_update(form_type, record_id, page=1):
    """Replace one page of a record. Body: {'payload': {...}}."""
    try:
        get_form_definition(form_type)
    except ValueError:
        return _not_found(f'Unknown form type: {form_type}')

    body = _json_body()
    if body is None or not isinstance(body.get('payload'), dict):
        return _bad_request('Request body must contain a payload object')

    try:
        data = store.update(form_type, record_id, page, sanitize_payload(body['payload']))
        return jsonify({'ok': True, 'data': data}), 200
    except (InvalidPageError, RecordConflictError, RecordNotFoundError, RecordValidationError) as e:
        db.session.rollback()
        return _store_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Update error for record {record_id}: {str(e)}')
        return jsonify({'ok': False, 'error': 'Failed to save record'}), 500


@api_bp.route('/forms/<form_type>/<record_id>/submit', methods=['POST'])
@rate_limit('submit')
def api_submit(form_type, record_id):
    """Submit a draft record after whole-form validation."""
    try:
        get_form_definition(form_type)
    except ValueError:
        return _not_found(f'Unknown form type: {form_type}')

    try:
        store.submit(form_type, record_id)
        return jsonify({'ok': True, 'data': {'id': record_id, 'status': 'submitted'}}), 200
    except (RecordConflictError, RecordNotFoundError, RecordValidationError) as e:
        db.session.rollback()
        return _store_error_response(e)
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f'Submit error for record {record_id}: {str(e)}')
        return jsonify({'ok': False, 'error': 'Failed to submit record'}), 500


# Error handlers
@api_bp.errorhandler(404)
def not_found(error):
    """Handle 404 errors."""
    return jsonify({'ok': False, 'error': 'Not found'}), 404


@api_bp.errorhandler(500)
def internal_error(error):
    """Handle 500 errors."""
    db.session.rollback()
    return jsonify({'ok': False, 'error': 'Internal server error'}), 500


@api_bp.errorhandler(429)
def rate_limit_handler(error):
    """Handle rate limit errors."""
    return jsonify({
        'ok': False,
        'error': 'Rate limit exceeded. Please try again later.'
    }), 429
