"""
Input Guardrails for the Sales Room chat.

Pre-LLM checks on everything a prospect types: sanitisation, suspicious
pattern detection and per-field validation. Validation never raises; it
returns a ``ValidationResult`` the caller checks before touching any state.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of validating one input."""
    is_valid: bool = True
    error: Optional[str] = None

    @classmethod
    def invalid(cls, error: str) -> "ValidationResult":
        return cls(is_valid=False, error=error)


@dataclass
class SuspicionCheck:
    suspicious: bool = False
    reasons: List[str] = field(default_factory=list)


@dataclass
class ProspectValidation:
    is_valid: bool = True
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class SanitizationOptions:
    max_length: int = 10000
    allow_newlines: bool = True
    allow_html: bool = False
    preserve_case: bool = True


# Sanitisation
_SCRIPT_BLOCK = re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE)
_STYLE_BLOCK = re.compile(r'<style[^>]*>.*?</style>', re.IGNORECASE)
_HTML_TAG = re.compile(r'<[^>]+>')
_HTML_ENTITY = re.compile(r'&[#\w]+;')
_NEWLINE_RUN = re.compile(r'[\r\n]+')
_EXCESS_NEWLINES = re.compile(r'\n{3,}')
_INLINE_WHITESPACE = re.compile(r'[ \t]+')

# Suspicious input
_SCRIPT_INJECTION = re.compile(r'<script|javascript:|vbscript:|data:text/html', re.IGNORECASE)
_SQL_INJECTION = re.compile(
    r'\b(?:union\s+(?:all\s+)?select|select\s+[\w\s,*]+\s+from|drop\s+table'
    r'|insert\s+into|update\s+\w+\s+set|delete\s+from)\b',
    re.IGNORECASE,
)
_COMMAND_CHARS = re.compile(r'[;&|`$(){}\[\]]')
_SPECIAL_CHARS = re.compile(r'[!@#$%^&*()+={}\[\]:";\'<>?,.~`]')
_REPEAT_50 = re.compile(r'(.)\1{50,}')

# Message validation
_MALICIOUS_PATTERNS = [
    re.compile(r'<script[^>]*>.*?</script>', re.IGNORECASE),
    re.compile(r'<iframe[^>]*>.*?</iframe>', re.IGNORECASE),
    re.compile(r'javascript:', re.IGNORECASE),
    re.compile(r'vbscript:', re.IGNORECASE),
    re.compile(r'data:text/html', re.IGNORECASE),
    re.compile(r'onclick\s*=', re.IGNORECASE),
    re.compile(r'onerror\s*=', re.IGNORECASE),
    re.compile(r'onload\s*=', re.IGNORECASE),
]
_REPEAT_10 = re.compile(r'(.)\1{10,}')
_FORMATTING_CHARS = re.compile(r'[!@#$%^&*()_+={}\[\]:";\'<>?,./~`]')
_UPPERCASE = re.compile(r'[A-Z]')

# Field validation
EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')
NAME_PATTERN = re.compile(r"^[a-zA-Z\s\-'.]+$")
COMPANY_PATTERN = re.compile(r'^[a-zA-Z0-9\s\-&.,()]+$')

MAX_EMAIL_LENGTH = 254
MAX_COMPANY_LENGTH = 100


def sanitize_input(text: Optional[str], options: Optional[SanitizationOptions] = None) -> str:
    """
    Clean user input.

    Order: trim, truncate to ``max_length``, strip HTML (unless allowed),
    normalise newlines (runs of 3+ collapse to 2, or all become spaces),
    collapse spaces and tabs, lower-case (unless preserving case), trim.
    """
    if not text or not isinstance(text, str):
        return ""
    options = options or SanitizationOptions()

    sanitized = text.strip()[:options.max_length]

    if not options.allow_html:
        sanitized = _SCRIPT_BLOCK.sub("", sanitized)
        sanitized = _STYLE_BLOCK.sub("", sanitized)
        sanitized = _HTML_TAG.sub("", sanitized)
        sanitized = _HTML_ENTITY.sub("", sanitized)

    if options.allow_newlines:
        sanitized = _EXCESS_NEWLINES.sub("\n\n", sanitized.replace("\r\n", "\n"))
    else:
        sanitized = _NEWLINE_RUN.sub(" ", sanitized)

    sanitized = _INLINE_WHITESPACE.sub(" ", sanitized)

    if not options.preserve_case:
        sanitized = sanitized.lower()

    return sanitized.strip()


def sanitize_message(text: Optional[str], max_length: int = 1000) -> str:
    """Sanitise a chat message: no HTML, newlines kept, case preserved."""
    return sanitize_input(text, SanitizationOptions(max_length=max_length))


def is_suspicious_input(text: str) -> SuspicionCheck:
    """Look for injection attempts and abusive payloads."""
    reasons = []

    if _SCRIPT_INJECTION.search(text):
        reasons.append("Script injection patterns detected")

    if _SQL_INJECTION.search(text):
        reasons.append("SQL injection patterns detected")

    if len(_COMMAND_CHARS.findall(text)) > 2:
        reasons.append("Command injection patterns detected")

    if text and len(_SPECIAL_CHARS.findall(text)) / len(text) > 0.5:
        reasons.append("Excessive special characters")

    if any(len(word) > 100 for word in text.split()):
        reasons.append("Unusually long words detected")

    if _REPEAT_50.search(text):
        reasons.append("Excessive character repetition")

    if reasons:
        logger.debug(f"Suspicious input: {reasons}")
    return SuspicionCheck(suspicious=bool(reasons), reasons=reasons)


def _contains_malicious_content(text: str) -> bool:
    return any(pattern.search(text) for pattern in _MALICIOUS_PATTERNS)


def _is_excessively_formatted(text: str) -> bool:
    if _REPEAT_10.search(text):
        return True
    if len(_FORMATTING_CHARS.findall(text)) > len(text) * 0.3:
        return True
    if len(_UPPERCASE.findall(text)) > len(text) * 0.7 and len(text) > 10:
        return True
    return False


def validate_message(
    message: Optional[str],
    max_length: int = 500,
    min_length: int = 1,
    allow_empty: bool = False,
) -> ValidationResult:
    if not message or not message.strip():
        if allow_empty:
            return ValidationResult()
        return ValidationResult.invalid("Message cannot be empty")

    trimmed = message.strip()

    if len(trimmed) < min_length:
        plural = "s" if min_length > 1 else ""
        return ValidationResult.invalid(f"Message must be at least {min_length} character{plural} long")

    if len(trimmed) > max_length:
        return ValidationResult.invalid(f"Message cannot exceed {max_length} characters")

    if _contains_malicious_content(trimmed):
        return ValidationResult.invalid("Message contains invalid content")

    if is_suspicious_input(trimmed).suspicious:
        return ValidationResult.invalid("Message contains potentially harmful content")

    if _is_excessively_formatted(trimmed):
        return ValidationResult.invalid("Message contains excessive formatting or special characters")

    return ValidationResult()


def validate_email(email: Optional[str], required: bool = False) -> ValidationResult:
    if not email or not email.strip():
        if required:
            return ValidationResult.invalid("Email address is required")
        return ValidationResult()

    trimmed = email.strip()
    if not EMAIL_PATTERN.match(trimmed):
        return ValidationResult.invalid("Please enter a valid email address")
    if len(trimmed) > MAX_EMAIL_LENGTH:
        return ValidationResult.invalid("Email address is too long")
    return ValidationResult()


def validate_name(
    name: Optional[str],
    required: bool = False,
    min_length: int = 2,
    max_length: int = 50,
) -> ValidationResult:
    if not name or not name.strip():
        if required:
            return ValidationResult.invalid("Name is required")
        return ValidationResult()

    trimmed = name.strip()

    if len(trimmed) < min_length:
        return ValidationResult.invalid(f"Name must be at least {min_length} characters long")
    if len(trimmed) > max_length:
        return ValidationResult.invalid(f"Name cannot exceed {max_length} characters")
    if not NAME_PATTERN.match(trimmed):
        return ValidationResult.invalid("Name can only contain letters, spaces, hyphens, and apostrophes")
    if re.search(r'\s{2,}', trimmed):
        return ValidationResult.invalid("Name contains invalid formatting")
    return ValidationResult()


def validate_company(company: Optional[str]) -> ValidationResult:
    """Company is optional; when given it must be short and plain."""
    if not company or not company.strip():
        return ValidationResult()

    trimmed = company.strip()
    if len(trimmed) > MAX_COMPANY_LENGTH:
        return ValidationResult.invalid(f"Company name cannot exceed {MAX_COMPANY_LENGTH} characters")
    if not COMPANY_PATTERN.match(trimmed):
        return ValidationResult.invalid("Company name contains invalid characters")
    return ValidationResult()


def validate_prospect_info(
    name: Optional[str] = None,
    email: Optional[str] = None,
    company: Optional[str] = None,
) -> ProspectValidation:
    """Validate whichever prospect fields were supplied."""
    errors = {}
    checks = (
        ("name", name, validate_name),
        ("email", email, validate_email),
        ("company", company, validate_company),
    )
    for field_name, value, validator in checks:
        if value is None:
            continue
        result = validator(value)
        if not result.is_valid:
            errors[field_name] = result.error

    return ProspectValidation(is_valid=not errors, errors=errors)
