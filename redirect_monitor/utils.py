"""Shared utility functions used across route and service modules."""
from datetime import datetime, timezone


def utc_now():
    return datetime.now(timezone.utc)


def isoformat_or_none(value):
    return value.isoformat() if value else None


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]
