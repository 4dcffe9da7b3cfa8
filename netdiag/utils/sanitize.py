"""Error message sanitization to prevent credential leakage."""
from __future__ import annotations

import re

MAX_ERROR_LENGTH = 500


def sanitize_error(message: str) -> str:
    """Redact credentials from provider error text and cap its length."""
    if not message:
        return message

    sanitized = re.sub(r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]", message)
    sanitized = re.sub(r"x-api-key:\s*\S+", "x-api-key: [REDACTED]", sanitized, flags=re.IGNORECASE)
    sanitized = re.sub(r"Bearer\s+\S+", "Bearer [REDACTED]", sanitized)

    if len(sanitized) > MAX_ERROR_LENGTH:
        sanitized = sanitized[:MAX_ERROR_LENGTH] + "..."
    return sanitized
