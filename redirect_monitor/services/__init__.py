from .url_validation import (
    REDIRECT_ROUTES,
    ProbeResult,
    RedirectRoute,
    ValidationCache,
    ValidationResult,
    is_healthy_status,
    probe_url,
    validate_route,
)
from .validation_scheduler import ValidationInProgressError, ValidationScheduler

__all__ = [
    'REDIRECT_ROUTES',
    'ProbeResult',
    'RedirectRoute',
    'ValidationCache',
    'ValidationInProgressError',
    'ValidationResult',
    'ValidationScheduler',
    'is_healthy_status',
    'probe_url',
    'validate_route',
]
