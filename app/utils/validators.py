import re

TIME_SLOT_PATTERN = re.compile(r'^(0?\d|1\d|2[0-3]):[0-5]\d(\s?[AaPp][Mm])?$')


def validate_phone_number(phone: str) -> bool:
    """Validate phone number format"""
    pattern = r'^\+?1?\d{9,15}$'
    return bool(re.match(pattern, phone))


def validate_time_slot(slot: str) -> bool:
    """Validate a booking time slot such as 14:30 or 2:30 PM"""
    return bool(TIME_SLOT_PATTERN.match(slot))


def sanitize_input(text: str) -> str:
    """Sanitize user input to prevent XSS"""
    if not text:
        return text

    sanitized = text.replace('<', '&lt;').replace('>', '&gt;')
    sanitized = sanitized.replace('"', '&quot;').replace("'", '&#x27;')
    return sanitized
