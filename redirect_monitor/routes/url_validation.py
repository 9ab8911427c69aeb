import secrets
from functools import wraps

from flask import Blueprint, abort, current_app, jsonify, request

from ..services.health_reports import dashboard_report, route_status, status_report, validation_report
from ..services.validation_scheduler import ValidationInProgressError
from ..utils import clean_text

url_validation_bp = Blueprint('url_validation', __name__)
EXTENSION_KEY = 'url_validation'


def get_validation_scheduler():
    scheduler = current_app.extensions.get(EXTENSION_KEY)
    if scheduler is None:
        abort(503, description='URL validation is not configured.')
    return scheduler


def _provided_admin_token():
    header = (request.headers.get('Authorization') or '').strip()
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return (request.headers.get('X-Admin-Token') or '').strip()


def admin_token_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        expected = (current_app.config.get('URL_VALIDATION_ADMIN_TOKEN') or '').strip()
        if not expected:
            abort(404)
        provided = _provided_admin_token()
        if not provided or not secrets.compare_digest(expected, provided):
            current_app.logger.warning('Rejected URL validation admin request with invalid token.')
            abort(401, description='Invalid or missing admin token.')
        return view(*args, **kwargs)
    return wrapped


def _no_store(payload, status=200):
    response = jsonify(payload)
    response.status_code = status
    response.headers['Cache-Control'] = 'no-store'
    return response


def _run_validation(include_unhealthy=False):
    scheduler = get_validation_scheduler()
    try:
        results = scheduler.validate_all()
    except ValidationInProgressError as exc:
        abort(409, description=str(exc))
    return _no_store(validation_report(results, include_unhealthy=include_unhealthy))


@url_validation_bp.route('/validate-all')
def validate_all():
    return _run_validation()


@url_validation_bp.route('/status')
def status():
    scheduler = get_validation_scheduler()
    return _no_store(status_report(scheduler.cache))


@url_validation_bp.route('/route-status')
def route_status_view():
    path = clean_text(request.args.get('path'), 500)
    if not path:
        abort(400, description='The "path" query parameter is required.')
    scheduler = get_validation_scheduler()
    return _no_store(route_status(scheduler.cache, path))


@url_validation_bp.route('/admin/validate-all')
@admin_token_required
def admin_validate_all():
    return _run_validation(include_unhealthy=True)


@url_validation_bp.route('/admin/dashboard')
@admin_token_required
def admin_dashboard():
    scheduler = get_validation_scheduler()
    payload = dashboard_report(scheduler.cache, include_history=True)
    payload['scheduler'] = scheduler.status()
    return _no_store(payload)
