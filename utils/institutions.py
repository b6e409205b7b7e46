import re

from models.institution import Institution


def normalize_shortcode(value) -> str:
    return (value or "").strip().upper() if isinstance(value, str) else ""


def find_institution(shortcode):
    code = normalize_shortcode(shortcode)
    if not code:
        return None
    return Institution.query.filter_by(shortcode=code).first()


def email_matches(institution: Institution, email: str) -> bool:
    try:
        return re.fullmatch(institution.email_pattern, email, flags=re.IGNORECASE) is not None
    except re.error:
        return False


def is_valid_pattern(pattern: str) -> bool:
    try:
        re.compile(pattern)
    except re.error:
        return False
    return True
