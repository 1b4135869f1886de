"""
Investor Forms

Validation, conditional visibility and incremental save/submit for the
investor accreditation, additional account holder and alternative
investment order forms, with a Flask record API.

Enhanced with:
- Rate limiting
- Security headers
- Audit logging
"""

import os
import time

from flask import Flask, g, jsonify, request
from flask_sqlalchemy import SQLAlchemy

# Initialize extensions
db = SQLAlchemy()


def create_app(test_config=None):
    """Application factory pattern."""
    app = Flask(__name__, instance_relative_config=True)

    app.config.from_mapping(
        SECRET_KEY=os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production'),
        SQLALCHEMY_DATABASE_URI=os.environ.get('DATABASE_URL', 'sqlite:///investor_forms.db'),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,

        # Rate limiting; per-endpoint overrides go in RATELIMIT_VALIDATE,
        # RATELIMIT_READ, RATELIMIT_SAVE and RATELIMIT_SUBMIT
        RATELIMIT_STORAGE_URI=os.environ.get('REDIS_URL', 'memory://'),
        RATELIMIT_STRATEGY='fixed-window',
        RATELIMIT_HEADERS_ENABLED=True,

        # Form session save retries
        SAVE_MAX_ATTEMPTS=int(os.environ.get('SAVE_MAX_ATTEMPTS', 3)),
        SAVE_BACKOFF_SECONDS=float(os.environ.get('SAVE_BACKOFF_SECONDS', 0.3)),
    )

    if test_config is None:
        app.config.from_pyfile('config.py', silent=True)
    else:
        app.config.from_mapping(test_config)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)

    # Imported here: these modules need `db`
    from investor_forms.security import init_security
    from investor_forms.routes import api_bp

    init_security(app)
    app.register_blueprint(api_bp)

    @app.before_request
    def start_timer():
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response):
        started = g.pop('request_started', None)
        if started is not None:
            app.logger.info(
                '%s %s - %s - %.3fs',
                request.method, request.path, response.status_code, time.perf_counter() - started,
            )
        return response

    with app.app_context():
        from investor_forms import models  # noqa: F401
        db.create_all()

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'ok': False, 'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(error):
        """Roll back the session and record the failure in the audit trail."""
        db.session.rollback()
        app.logger.error('Internal error: %s', error)

        from investor_forms.audit_logger import AuditAction, AuditCategory, log_action
        log_action(
            action=AuditAction.ERROR_OCCURRED,
            action_category=AuditCategory.SYSTEM,
            success=False,
            error_message=str(error),
        )
        return jsonify({'ok': False, 'error': 'Internal server error'}), 500

    return app
