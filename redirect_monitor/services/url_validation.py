"""Reachability checks for the legacy support short-links.

The registry below lists every local path that 301s to an external form
provider. Each destination is probed with a single HEAD request and the
latest outcome per path is kept in a :class:`ValidationCache`.

A destination is *healthy* when it answers with any status below 500. A
4xx from a third-party form host still proves the host is up, so it is not
treated as a failure here.
"""
import socket
import threading
import urllib.error
import urllib.request
from collections import OrderedDict, deque
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import urlparse

from ..utils import isoformat_or_none, utc_now

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = 'redirect-monitor/1.0 (+link health check)'
DEFAULT_HISTORY_LIMIT = 20
TIMEOUT_ERROR = 'Request timeout'
SUPPORTED_SCHEMES = {'http', 'https'}


@dataclass(frozen=True)
class RedirectRoute:
    name: str
    path: str
    destination: str


@dataclass
class ValidationResult:
    route: str
    destination: str
    status: Optional[int]
    is_healthy: bool
    last_checked: datetime
    error: Optional[str] = None

    def to_dict(self):
        return {
            'route': self.route,
            'destination': self.destination,
            'status': self.status,
            'isHealthy': self.is_healthy,
            'lastChecked': isoformat_or_none(self.last_checked),
            'error': self.error,
        }


@dataclass(frozen=True)
class ProbeResult:
    status: Optional[int]
    error: Optional[str] = None


REDIRECT_ROUTES = (
    RedirectRoute(
        name='Support Redirect',
        path='/support-redirect/',
        destination='https://forms.monday.com/forms/236f7d6c52a0be10dd9a6541dfc318e9?r=use1',
    ),
    RedirectRoute(
        name='Student Cribs Fault Report',
        path='/Student-Cribs-Fault-Report/',
        destination='https://wkf.ms/4dfAxf7',
    ),
    RedirectRoute(
        name='UrbanRest Support Redirect',
        path='/urbanrest-support-redirect/',
        destination='https://forms.monday.com/forms/354bc6605fbffcfc231c6c54b88c69e9?r=use1',
    ),
    RedirectRoute(
        name='Resooma Support Redirect',
        path='/resooma-support-redirect/',
        destination='https://forms.monday.com/forms/d94222cdbf7f7ad9647ba19a9be84e53?r=use1',
    ),
)


def is_healthy_status(status):
    return status is not None and status < 500


class _NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    # Report the first hop's status instead of following Location headers.
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


_opener = urllib.request.build_opener(_NoRedirectHandler)


def _is_timeout(exc):
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, 'reason', None)
    return isinstance(reason, (socket.timeout, TimeoutError))


def _status_result(status):
    if is_healthy_status(status):
        return ProbeResult(status=status)
    return ProbeResult(status=status, error=f'Server returned {status}')


def probe_url(url, timeout=DEFAULT_TIMEOUT_SECONDS, user_agent=DEFAULT_USER_AGENT):
    """Issue one HEAD request against ``url`` and classify the outcome.

    Never raises. Status codes of every class are returned as data; transport
    failures and timeouts come back with ``status=None`` and an error message.
    """
    scheme = urlparse(url or '').scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        return ProbeResult(status=None, error=f'Unsupported URL scheme: {scheme or "none"}')

    try:
        req = urllib.request.Request(url, method='HEAD', headers={'User-Agent': user_agent})
    except ValueError as exc:
        return ProbeResult(status=None, error=str(exc))

    try:
        with _opener.open(req, timeout=timeout) as response:  # nosec B310
            return _status_result(response.status)
    except urllib.error.HTTPError as exc:
        exc.close()
        return _status_result(exc.code)
    except Exception as exc:
        if _is_timeout(exc):
            return ProbeResult(status=None, error=TIMEOUT_ERROR)
        if isinstance(exc, urllib.error.URLError):
            return ProbeResult(status=None, error=str(exc.reason) or str(exc))
        return ProbeResult(status=None, error=str(exc) or exc.__class__.__name__)


def validate_route(route, prober=probe_url, timeout=DEFAULT_TIMEOUT_SECONDS):
    outcome = prober(route.destination, timeout=timeout)
    return ValidationResult(
        route=route.path,
        destination=route.destination,
        status=outcome.status,
        is_healthy=is_healthy_status(outcome.status),
        last_checked=utc_now(),
        error=outcome.error,
    )


class ValidationCache:
    """Latest :class:`ValidationResult` per redirect path.

    Scheduler passes write while request threads read, so every access holds
    the lock and readers get list copies. A path keeps the position of its
    first insertion when its result is replaced.
    """

    def __init__(self, history_limit=DEFAULT_HISTORY_LIMIT):
        self.history_limit = max(1, int(history_limit))
        self._results = OrderedDict()
        self._history = {}
        self._lock = threading.Lock()

    def record_result(self, result):
        """Store ``result`` and return the entry it replaced, if any."""
        with self._lock:
            previous = self._results.get(result.route)
            self._results[result.route] = result
            history = self._history.get(result.route)
            if history is None:
                history = deque(maxlen=self.history_limit)
                self._history[result.route] = history
            history.append(result)
            return previous

    def get_all(self):
        with self._lock:
            return list(self._results.values())

    def get_by_path(self, path):
        with self._lock:
            return self._results.get(path)

    def get_unhealthy(self):
        with self._lock:
            return [result for result in self._results.values() if not result.is_healthy]

    def has_unhealthy(self):
        with self._lock:
            return any(not result.is_healthy for result in self._results.values())

    def get_history(self, path):
        with self._lock:
            return list(self._history.get(path, ()))

    def clear(self):
        with self._lock:
            self._results.clear()
            self._history.clear()

    def __len__(self):
        with self._lock:
            return len(self._results)
