"""Secret and PII redaction for log entries.

Applied to every structured log event. Homeowners type free text, so besides
credentials we also mask email addresses and phone numbers.
"""

import re

REDACT_PLACEHOLDER = "[REDACTED]"

# Each tuple: (compiled_regex, description_for_testing).
_REDACT_PATTERNS = [
    # --- API keys / tokens (known prefixes) ---
    (re.compile(r"sk-[A-Za-z0-9_-]{20,}"),            "OpenAI API key"),
    (re.compile(r"AIza[A-Za-z0-9_-]{35}"),             "Google API key"),
    (re.compile(r"AKIA[0-9A-Z]{16}"),                  "AWS Access Key ID"),
    (re.compile(r"(?i)(Bearer\s+)[A-Za-z0-9_\-.]{20,}"), "Bearer token"),
    # --- Contact details ---
    (re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}"), "email address"),
    (re.compile(
        r"(?<!\d)(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)"
    ), "US phone number"),
]

# Keys whose values are never logged, whatever they contain.
SENSITIVE_KEYS = frozenset({"api_key", "authorization", "image", "images", "data_url"})


def redact_text(text):
    """Replace secrets and contact details in *text* with a placeholder."""
    for pattern, _ in _REDACT_PATTERNS:
        text = pattern.sub(REDACT_PLACEHOLDER, text)
    return text


def redact_data(obj):
    """Recursively redact a dict/list/string before it is logged."""
    if isinstance(obj, str):
        return redact_text(obj)
    if isinstance(obj, (bytes, bytearray)):
        return f"<{len(obj)} bytes>"
    if isinstance(obj, dict):
        return {
            k: REDACT_PLACEHOLDER if str(k).lower() in SENSITIVE_KEYS else redact_data(v)
            for k, v in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [redact_data(item) for item in obj]
    return obj
