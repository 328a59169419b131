import re

# Order matters: header forms before the bare bearer form.
_PATTERNS = (
    # Query params like apiKey=, api_key=, key=, token=, secret=, sig=
    (re.compile(r"(?i)\b(api[_-]?key|key|token|secret|sig|signature)=([^&\s]+)"), r"\1=***REDACTED***"),
    # Authorization: Bearer <token>
    (re.compile(r"(?i)Authorization:\s*Bearer\s+[A-Za-z0-9._\-]+"), "Authorization: Bearer ***REDACTED***"),
    # Generic bearer tokens without header prefix
    (re.compile(r"(?i)Bearer\s+[A-Za-z0-9._\-]+"), "Bearer ***REDACTED***"),
    # Session cookies echoed back in error bodies
    (re.compile(r"(?i)(user_session|nicosid|auth_token)=([^;\s]+)"), r"\1=***REDACTED***"),
)


def redact_secrets(text: str) -> str:
    """Redact common secret patterns from logs and error strings."""
    if not isinstance(text, str):
        return text
    redacted = text
    for pattern, replacement in _PATTERNS:
        redacted = pattern.sub(replacement, redacted)
    return redacted
