"""Output sanitization: redact payment secrets before they reach logs or tool output."""
import re

# Session/CSRF tokens and generic credentials
_CREDENTIAL_PATTERNS = [
    re.compile(r"(?i)(api[_-]?key|secret|password|(?:csrf_)?token|client_?key)(\"?\s*[=:]\s*\"?)[^\s\",}]+"),
    re.compile(r"(?:test|live)_[A-Z0-9]{20,}"),   # processor client keys
]

# Processor-encrypted card fields, state blobs and fraud signals
_PAYMENT_FIELD_PATTERN = re.compile(
    r"(?i)(\"?(?:encrypted\w+|clientData|adyenStateData|adyenFingerprint|fingerprint|state_data)\"?\s*[=:]\s*)"
    r"(\"(?:[^\"\\]|\\.)*\"|[^\s,}&]+)"
)

# Credit card number patterns (13-19 digits, optionally separated)
_CARD_NUMBER_PATTERN = re.compile(
    r"\b(?:\d{4}[-\s]?){2,4}\d{1,4}\b"
)

# ANSI escape codes
_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def redact_card_number(number: str) -> str:
    """Mask a card number to show only last 4 digits."""
    digits = re.sub(r"\D", "", number)
    if len(digits) < 4:
        return "****"
    return f"************{digits[-4:]}"


def redact_token(token: str) -> str:
    """Keep only enough of a token to tell two apart."""
    if len(token) <= 8:
        return "[REDACTED]"
    return f"{token[:4]}...{token[-2:]}"


def sanitize_output(text: str, max_chars: int = 50000) -> str:
    """
    Sanitize text before it is logged or returned as tool output.

    - Strips ANSI escape codes
    - Redacts credential and token patterns
    - Redacts encrypted card fields, state blobs and fingerprints
    - Redacts credit card numbers
    - Truncates to max_chars
    """
    text = _ANSI_PATTERN.sub("", text)

    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)}[REDACTED]" if m.lastindex else "[REDACTED]", text)

    text = _PAYMENT_FIELD_PATTERN.sub(lambda m: f"{m.group(1)}\"[REDACTED]\"", text)

    text = _CARD_NUMBER_PATTERN.sub("[CARD REDACTED]", text)

    if len(text) > max_chars:
        text = text[:max_chars] + f"\n\n[... truncated at {max_chars} chars]"

    return text
