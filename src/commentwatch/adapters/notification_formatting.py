"""Shared notification formatting helpers.

Keeping formatting here prevents drift between adapters and keeps messages
consistent regardless of delivery channel.
"""

from __future__ import annotations

import html
from email.message import EmailMessage

from commentwatch.core.config import NotificationConfig
from commentwatch.core.models import CommentRecord


def format_subject(record: CommentRecord) -> str:
    return f"New Comment from {record.commenter_name} on {record.claim_name}"


def _format_timestamp(record: CommentRecord) -> str:
    return record.timestamp.strftime("%Y-%m-%d %H:%M:%S %Z").strip()


def format_text(record: CommentRecord) -> str:
    """Create the plain text body used by e-mail notifications."""

    lines = [
        record.claim_name,
        "---",
        "",
        f"{record.commenter_name} ({record.commenter_url})",
        _format_timestamp(record),
        "===",
        record.text,
    ]
    return "\n".join(lines) + "\n"


def format_html(record: CommentRecord) -> str:
    """Create the HTML body used by the Bot API adapter."""

    commenter = html.escape(record.commenter_name)
    parts = [f"<b>{html.escape(format_subject(record))}</b>", ""]
    if record.commenter_url:
        safe_url = html.escape(record.commenter_url)
        parts.append(f"<a href=\"{safe_url}\">{commenter}</a>")
    else:
        parts.append(commenter)
    parts.extend(
        [
            html.escape(_format_timestamp(record)),
            "──────────────",
            "",
            html.escape(record.text),
        ]
    )
    return "\n".join(parts)


def build_email(record: CommentRecord, addresses: NotificationConfig) -> EmailMessage:
    """Return the e-mail notifying about one new or updated comment."""

    message = EmailMessage()
    message["From"] = addresses.sender
    message["To"] = addresses.recipient
    message["Subject"] = format_subject(record)
    message.set_content(format_text(record))
    return message
