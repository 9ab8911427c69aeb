"""Periodic re-validation of the redirect registry.

One :class:`ValidationScheduler` owns the timer thread, the pass guard and
the cache it writes to. The scheduler tick and on-demand validation both go
through the same guarded pass, so two passes never overlap.
"""
import logging
import threading
import time
from functools import partial

from ..utils import isoformat_or_none, utc_now
from .url_validation import (
    DEFAULT_TIMEOUT_SECONDS,
    REDIRECT_ROUTES,
    ValidationCache,
    ValidationResult,
    probe_url,
    validate_route,
)

DEFAULT_INTERVAL_MINUTES = 30


class ValidationInProgressError(RuntimeError):
    """Raised when a pass is requested while another one is still running."""


class ValidationScheduler:
    def __init__(
        self,
        routes=REDIRECT_ROUTES,
        cache=None,
        prober=None,
        timeout=DEFAULT_TIMEOUT_SECONDS,
        logger=None,
        on_unhealthy=None,
        user_agent=None,
    ):
        self.routes = tuple(routes)
        self.cache = cache if cache is not None else ValidationCache()
        if prober is None:
            prober = partial(probe_url, user_agent=user_agent) if user_agent else probe_url
        self.prober = prober
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.on_unhealthy = on_unhealthy
        self.interval_minutes = None
        self.last_pass_started_at = None
        self.last_pass_completed_at = None
        self.last_pass_duration_ms = None
        self._pass_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._stop_event = None
        self._thread = None
        self._worker = None

    @property
    def is_running(self):
        with self._state_lock:
            return self._thread is not None

    @property
    def is_validating(self):
        return self._pass_lock.locked()

    def start(self, interval_minutes=DEFAULT_INTERVAL_MINUTES):
        """Run one pass right away, then every ``interval_minutes``.

        Returns False when the scheduler was already running.
        """
        interval_seconds = float(interval_minutes) * 60
        if interval_seconds <= 0:
            raise ValueError('interval_minutes must be positive')

        with self._state_lock:
            if self._thread is not None:
                self.logger.info('URL validation scheduler already running.')
                return False
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run_loop,
                args=(stop_event, interval_seconds),
                name='url-validation-scheduler',
                daemon=True,
            )
            self.interval_minutes = interval_minutes
            self._stop_event = stop_event
            self._thread = thread
            self._worker = thread

        self.logger.info(f'Starting URL validation scheduler - validation every {interval_minutes} minutes.')
        thread.start()
        return True

    def stop(self):
        """Cancel future ticks. A pass already in flight is left to finish."""
        with self._state_lock:
            if self._thread is None:
                return False
            self._stop_event.set()
            self._stop_event = None
            self._thread = None
        self.logger.info('URL validation scheduler stopped.')
        return True

    def join(self, timeout=None):
        """Wait for the most recently started timer thread to exit."""
        with self._state_lock:
            thread = self._worker
        if thread is not None:
            thread.join(timeout)

    def _run_loop(self, stop_event, interval_seconds):
        self.run_pass()
        while not stop_event.wait(interval_seconds):
            self.run_pass()

    def run_pass(self):
        """Scheduler entry point: never raises, returns None when skipped or failed."""
        try:
            return self.validate_all()
        except ValidationInProgressError:
            self.logger.info('Validation already in progress, skipping.')
            return None
        except Exception:
            self.logger.exception('URL validation pass failed.')
            return None

    def validate_all(self):
        if not self._pass_lock.acquire(blocking=False):
            raise ValidationInProgressError('Validation already in progress')
        try:
            results, newly_unhealthy = self._execute_pass()
        finally:
            self._pass_lock.release()

        # The alert hook runs outside the pass guard.
        if newly_unhealthy and self.on_unhealthy is not None:
            try:
                self.on_unhealthy(newly_unhealthy)
            except Exception:
                self.logger.exception('Unhealthy redirect alert hook failed.')
        return results

    def _validate_one(self, route):
        try:
            return validate_route(route, self.prober, self.timeout)
        except Exception as exc:
            self.logger.exception(f'Probe for {route.path} raised instead of returning a result.')
            return ValidationResult(
                route=route.path,
                destination=route.destination,
                status=None,
                is_healthy=False,
                last_checked=utc_now(),
                error=str(exc) or exc.__class__.__name__,
            )

    def _execute_pass(self):
        started_monotonic = time.monotonic()
        self.last_pass_started_at = utc_now()
        self.logger.info('Starting URL validation check...')

        results = []
        newly_unhealthy = []
        for route in self.routes:
            result = self._validate_one(route)
            previous = self.cache.record_result(result)
            results.append(result)
            if self._log_transition(previous, result):
                newly_unhealthy.append(result)

        duration_ms = int((time.monotonic() - started_monotonic) * 1000)
        self.last_pass_completed_at = utc_now()
        self.last_pass_duration_ms = duration_ms
        self._log_summary(results, duration_ms)
        return results, newly_unhealthy

    def _log_transition(self, previous, result):
        """Log health changes; True when ``result`` is a new failure."""
        if result.is_healthy:
            if previous is not None and not previous.is_healthy:
                self.logger.info(f'Redirect {result.route} recovered (status {result.status}).')
            return False
        if previous is None:
            self.logger.warning(f'Redirect {result.route} is unhealthy on first check.')
            return True
        if previous.is_healthy:
            self.logger.warning(
                f'Redirect {result.route} became unhealthy: {result.error or f"HTTP {result.status}"}'
            )
            return True
        return False

    def _log_summary(self, results, duration_ms):
        self.logger.info(f'URL validation complete in {duration_ms}ms: {len(results)} routes checked.')
        for result in results:
            label = 'HEALTHY' if result.is_healthy else 'UNHEALTHY'
            self.logger.info(
                f'{label} - {result.route} ({result.destination}) - Status: {result.status or "ERROR"}'
            )

        unhealthy = [result for result in results if not result.is_healthy]
        if not unhealthy:
            self.logger.info('All redirects are healthy.')
            return
        self.logger.warning(f'{len(unhealthy)} unhealthy redirect(s) detected:')
        for result in unhealthy:
            self.logger.warning(f'  - {result.route}: {result.error or f"HTTP {result.status}"}')

    def status(self):
        return {
            'isRunning': self.is_running,
            'isValidating': self.is_validating,
            'intervalMinutes': self.interval_minutes,
            'lastPassStartedAt': isoformat_or_none(self.last_pass_started_at),
            'lastPassCompletedAt': isoformat_or_none(self.last_pass_completed_at),
            'lastPassDurationMs': self.last_pass_duration_ms,
        }
