"""Field checks shared by the request models of several routers."""

import re

from dental_office.scheduling.slots import is_valid_time, normalize_time

PHONE_PATTERN = re.compile(r'^\+?[1-9]\d{0,15}$')
PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)')
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 72
MAX_NOTES_LENGTH = 500
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 480


def clean_name(value: str) -> str:
    normalized = value.strip()
    if not 2 <= len(normalized) <= 100:
        raise ValueError('Name must be between 2 and 100 characters.')
    return normalized


def check_password(value: str) -> str:
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long.')
    if len(value.encode('utf-8')) > MAX_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at most {MAX_PASSWORD_LENGTH} bytes long.')
    if not PASSWORD_PATTERN.match(value):
        raise ValueError('Password must contain at least one uppercase letter, one lowercase letter, and one number.')
    return value


def clean_phone(value: str) -> str:
    normalized = value.strip()
    if not PHONE_PATTERN.match(normalized):
        raise ValueError('Please provide a valid phone number.')
    return normalized


def clean_time(value: str) -> str:
    if not is_valid_time(value):
        raise ValueError('Please provide a valid time in HH:MM format.')
    return normalize_time(value)


def clean_notes(value: str | None) -> str:
    if value is None:
        return ''
    normalized = value.strip()
    if len(normalized) > MAX_NOTES_LENGTH:
        raise ValueError(f'Notes cannot exceed {MAX_NOTES_LENGTH} characters.')
    return normalized


def check_duration(value: int | None) -> int | None:
    if value is None:
        return None
    if not MIN_DURATION_MINUTES <= value <= MAX_DURATION_MINUTES:
        raise ValueError(f'Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes.')
    return value
