import json
import logging
import re
import secrets

from flask import Flask, g, has_request_context, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .notifications import send_redirect_health_alert
from .services import REDIRECT_ROUTES, ValidationCache, ValidationScheduler

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,80}$")
_sentry_initialized = False


class JsonLogFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'time': self.formatTime(record, self.datefmt),
        }
        if has_request_context():
            payload.update(
                {
                    'request_id': getattr(g, 'request_id', ''),
                    'method': request.method,
                    'path': request.path,
                    'remote_ip': request.remote_addr,
                }
            )
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(app):
    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))
    if not app.config.get('LOG_JSON', True):
        return
    formatter = JsonLogFormatter()
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)


def init_sentry(app):
    global _sentry_initialized
    if _sentry_initialized:
        return

    dsn = (app.config.get('SENTRY_DSN') or '').strip()
    if not dsn:
        return

    try:
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        traces_sample_rate = float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0)
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=traces_sample_rate,
            environment=(app.config.get('SENTRY_ENVIRONMENT') or None),
        )
        _sentry_initialized = True
        app.logger.info('Sentry monitoring enabled.')
    except Exception:
        app.logger.exception('Failed to initialize Sentry monitoring.')


def _alert_hook(app):
    def notify(results):
        with app.app_context():
            send_redirect_health_alert(results)
    return notify


def init_url_validation(app):
    cache = ValidationCache(history_limit=app.config.get('URL_VALIDATION_HISTORY_LIMIT', 20))
    scheduler = ValidationScheduler(
        routes=app.config.get('URL_VALIDATION_ROUTES') or REDIRECT_ROUTES,
        cache=cache,
        prober=app.config.get('URL_VALIDATION_PROBER'),
        timeout=float(app.config.get('URL_VALIDATION_TIMEOUT_SECONDS') or 10.0),
        logger=app.logger,
        on_unhealthy=_alert_hook(app),
        user_agent=app.config.get('URL_VALIDATION_USER_AGENT'),
    )
    app.extensions['url_validation'] = scheduler

    if app.config.get('TESTING') or not app.config.get('URL_VALIDATION_SCHEDULER_ENABLED', True):
        app.logger.info('URL validation scheduler disabled for this app instance.')
        return scheduler
    scheduler.start(app.config.get('URL_VALIDATION_INTERVAL_MINUTES') or 24 * 60)
    return scheduler


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    configure_logging(app)

    if app.config.get('TRUST_PROXY_HEADERS'):
        # Only trust one proxy hop (the platform edge) when explicitly enabled.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_sentry(app)

    @app.before_request
    def assign_request_id():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        if _REQUEST_ID_RE.match(incoming):
            g.request_id = incoming
        else:
            g.request_id = secrets.token_hex(16)

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('Cross-Origin-Resource-Policy', 'same-origin')
        if request.is_secure and app.config.get('HSTS_ENABLED', True):
            hsts_max_age = max(0, int(app.config.get('HSTS_MAX_AGE', 31536000)))
            hsts_parts = [f'max-age={hsts_max_age}']
            if app.config.get('HSTS_INCLUDE_SUBDOMAINS', True):
                hsts_parts.append('includeSubDomains')
            if app.config.get('HSTS_PRELOAD', False):
                hsts_parts.append('preload')
            response.headers.setdefault('Strict-Transport-Security', '; '.join(hsts_parts))
        if request.path.startswith('/api/'):
            response.headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if not request.path.startswith('/api/'):
            return error
        response = jsonify({'error': error.description or error.name})
        response.status_code = error.code or 500
        return response

    @app.errorhandler(500)
    def handle_server_error(error):
        if request.path.startswith('/api/'):
            return jsonify({'error': 'Internal server error.'}), 500
        return 'Internal Server Error', 500

    @app.get('/healthz')
    def healthz():
        scheduler = app.extensions.get('url_validation')
        return {
            'status': 'ok',
            'scheduler': scheduler.status() if scheduler is not None else None,
        }, 200

    @app.get('/readyz')
    def readyz():
        scheduler = app.extensions.get('url_validation')
        checks = {
            'scheduler_configured': scheduler is not None,
            'all_routes_validated': False,
        }
        if scheduler is not None:
            checks['all_routes_validated'] = all(
                scheduler.cache.get_by_path(route.path) is not None for route in scheduler.routes
            )
        all_ready = all(checks.values())
        return {'status': 'ready' if all_ready else 'warming', 'checks': checks}, (200 if all_ready else 503)

    from .routes.main import main_bp
    from .routes.url_validation import url_validation_bp
    app.register_blueprint(main_bp)
    app.register_blueprint(url_validation_bp, url_prefix='/api/url-validation')

    init_url_validation(app)
    return app
