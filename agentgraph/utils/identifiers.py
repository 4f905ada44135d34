"""Slug generation and timestamp utilities."""

import random
import re
import string
from datetime import datetime, timezone

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def utc_timestamp() -> str:
    """Generate an ISO8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def camel_case(name: str) -> str:
    """Convert a display name to camelCase, dropping punctuation."""
    words = re.sub(r"[^\w\s]", " ", name).split()
    if not words:
        return ""
    head, *tail = words
    return head.lower() + "".join(word[:1].upper() + word[1:].lower() for word in tail)


def random_suffix(length: int = 2) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def generate_slug(name: str, prefix: str = "") -> str:
    """Generate a slug like ``supportAgentx3`` from a display name.

    The camelCase body is truncated to 10 characters and a random 2-char
    suffix is appended so that agents sharing a name still get distinct slugs.
    """
    return f"{prefix}{camel_case(name)[:10]}{random_suffix()}"


def generate_tool_slug(name: str) -> str:
    """Generate a slug for a tool node (``tool`` prefix)."""
    return generate_slug(name, prefix="tool")
