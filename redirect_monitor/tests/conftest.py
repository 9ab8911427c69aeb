import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from redirect_monitor import create_app
from redirect_monitor.services.url_validation import ProbeResult


class DestinationServer:
    """Local stand-in for the external form hosts.

    ``script(path, *statuses)`` queues the status codes returned for ``path``;
    the last one repeats once the queue is drained.
    """

    def __init__(self):
        self.statuses = {}
        self.delays = {}
        self.hits = {}
        self.lock = threading.Lock()
        self.httpd = ThreadingHTTPServer(("127.0.0.1", 0), self._handler_class())
        self.thread = threading.Thread(target=self.httpd.serve_forever, daemon=True)

    @property
    def base_url(self):
        host, port = self.httpd.server_address[:2]
        return f"http://{host}:{port}"

    def url(self, path):
        return f"{self.base_url}{path}"

    def script(self, path, *statuses):
        with self.lock:
            self.statuses[path] = list(statuses)

    def delay(self, path, seconds):
        with self.lock:
            self.delays[path] = seconds

    def hit_count(self, path):
        with self.lock:
            return self.hits.get(path, 0)

    def _next(self, path):
        with self.lock:
            self.hits[path] = self.hits.get(path, 0) + 1
            queue = self.statuses.get(path) or [200]
            status = queue.pop(0) if len(queue) > 1 else queue[0]
            return status, self.delays.get(path, 0)

    def _handler_class(self):
        server = self

        class Handler(BaseHTTPRequestHandler):
            def do_HEAD(self):
                status, delay = server._next(self.path)
                if delay:
                    time.sleep(delay)
                try:
                    self.send_response(status)
                    if 300 <= status < 400:
                        self.send_header("Location", "/redirect-target")
                    self.send_header("Content-Length", "0")
                    self.end_headers()
                except (BrokenPipeError, ConnectionResetError):
                    pass

            def log_message(self, format, *args):
                pass

        return Handler

    def start(self):
        self.thread.start()

    def stop(self):
        self.httpd.shutdown()
        self.httpd.server_close()


@pytest.fixture()
def destination_server():
    server = DestinationServer()
    server.start()
    yield server
    server.stop()


class RecordingProber:
    """Prober double returning canned outcomes per URL and counting calls."""

    def __init__(self, outcomes=None, default=None):
        self.outcomes = dict(outcomes or {})
        self.default = default or ProbeResult(status=200)
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, url, timeout=None):
        with self.lock:
            self.calls.append(url)
        outcome = self.outcomes.get(url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def count(self, url):
        with self.lock:
            return self.calls.count(url)


@pytest.fixture()
def recording_prober():
    return RecordingProber()


def build_test_app(overrides=None):
    config = {
        "TESTING": True,
        "LOG_JSON": False,
        "URL_VALIDATION_ADMIN_TOKEN": "",
        "REDIRECT_ALERT_EMAILS": "",
        "MAILGUN_API_KEY": "",
        "SMTP_HOST": "",
        "SENTRY_DSN": "",
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def app(recording_prober):
    return build_test_app({"URL_VALIDATION_PROBER": recording_prober})


@pytest.fixture()
def client(app):
    return app.test_client()
