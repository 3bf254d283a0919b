"""Shared payload helpers for creating and updating Club and Court records."""

import re

_BOOL_TRUE = {'true', '1', 'yes', 'on'}
_BOOL_FALSE = {'false', '0', 'no', 'off'}
ALLOWED_COURT_TYPES = {'indoor', 'outdoor'}
ALLOWED_SURFACES = {'crystal', 'wall', 'synthetic'}

CLUB_WRITABLE_FIELDS = [
    'name', 'slug', 'description', 'location', 'logo_url',
    'booking_duration', 'default_price', 'opening_hour', 'closing_hour',
]
COURT_WRITABLE_FIELDS = ['name', 'court_type', 'surface', 'price', 'is_active']

_STRING_LIMITS = {
    'name': 120,
    'slug': 120,
    'description': 3000,
    'location': 200,
    'logo_url': 500,
    'court_type': 20,
    'surface': 20,
}
_FLOAT_FIELDS = {'default_price', 'price'}
_INT_RANGES = {
    'booking_duration': (30, 240),
    'opening_hour': (0, 23),
    'closing_hour': (1, 24),
}
_BOOL_FIELDS = {'is_active'}


def _clean_text(value, max_len):
    if value is None:
        return ''
    text = str(value).strip()
    if len(text) > max_len:
        return text[:max_len]
    return text


def slugify(value):
    text = _clean_text(value, max_len=120).lower()
    text = re.sub(r'[^a-z0-9]+', '-', text)
    return re.sub(r'-{2,}', '-', text).strip('-')


def _parse_float(value):
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_int(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    normalized = str(value).strip().lower()
    if normalized in _BOOL_TRUE:
        return True
    if normalized in _BOOL_FALSE:
        return False
    return None


def _normalize_fields(raw_data, writable_fields):
    errors = []
    data = {}
    for field in writable_fields:
        if field not in raw_data:
            continue
        value = raw_data.get(field)

        if field in _STRING_LIMITS:
            cleaned = _clean_text(value, _STRING_LIMITS[field])
            if field == 'slug':
                cleaned = slugify(cleaned)
            if field == 'court_type':
                cleaned = cleaned.lower()
                if cleaned not in ALLOWED_COURT_TYPES:
                    allowed = ', '.join(sorted(ALLOWED_COURT_TYPES))
                    errors.append(f'court_type must be one of: {allowed}.')
                    continue
            if field == 'surface':
                cleaned = cleaned.lower()
                if cleaned not in ALLOWED_SURFACES:
                    allowed = ', '.join(sorted(ALLOWED_SURFACES))
                    errors.append(f'surface must be one of: {allowed}.')
                    continue
            data[field] = cleaned
            continue

        if field in _FLOAT_FIELDS:
            if field == 'price' and value in (None, ''):
                data[field] = None
                continue
            parsed = _parse_float(value)
            if parsed is None or parsed < 0:
                errors.append(f'{field} must be a non-negative number.')
                continue
            data[field] = parsed
            continue

        if field in _INT_RANGES:
            parsed = _parse_int(value)
            low, high = _INT_RANGES[field]
            if parsed is None or not low <= parsed <= high:
                errors.append(f'{field} must be an integer between {low} and {high}.')
                continue
            data[field] = parsed
            continue

        if field in _BOOL_FIELDS:
            parsed = _parse_bool(value)
            if parsed is None:
                errors.append(f'{field} must be true or false.')
                continue
            data[field] = parsed
            continue

    if 'name' in data and not data['name']:
        errors.append('name cannot be empty.')
    return data, errors


def normalize_club_payload(raw_data, partial=False):
    """Return normalized club payload and validation errors."""
    if not isinstance(raw_data, dict):
        return {}, ['Invalid JSON payload']

    club_data, errors = _normalize_fields(raw_data, CLUB_WRITABLE_FIELDS)
    if 'slug' in club_data and not club_data['slug']:
        errors.append('slug cannot be empty.')

    if not partial:
        if not club_data.get('name'):
            errors.append('Name is required')
        elif not club_data.get('slug'):
            club_data['slug'] = slugify(club_data['name'])

    opening = club_data.get('opening_hour')
    closing = club_data.get('closing_hour')
    if opening is not None and closing is not None and closing <= opening:
        errors.append('closing_hour must be after opening_hour.')
    return club_data, errors


def normalize_court_payload(raw_data, partial=False):
    """Return normalized court payload and validation errors."""
    if not isinstance(raw_data, dict):
        return {}, ['Invalid JSON payload']

    court_data, errors = _normalize_fields(raw_data, COURT_WRITABLE_FIELDS)
    if not partial and not court_data.get('name'):
        errors.append('Name is required')
    return court_data, errors


def apply_changes(record, data):
    for field, value in data.items():
        setattr(record, field, value)
