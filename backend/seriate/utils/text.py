"""Helpers that turn message fields into embeddable text."""

from __future__ import annotations

DEFAULT_BODY_MAX_CHARS = 8000


def compose_item_text(
    subject: str | None = None,
    author: str | None = None,
    body: str | None = None,
    *,
    max_body_chars: int = DEFAULT_BODY_MAX_CHARS,
) -> str:
    """Join subject, sender, and a truncated body into one newline-separated string."""

    parts: list[str] = []
    if subject:
        parts.append(f"Subject: {subject}")
    if author:
        parts.append(f"From: {author}")
    if body:
        parts.append(body[:max_body_chars])
    return "\n".join(parts)
