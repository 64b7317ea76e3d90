"""API-to-core mapping adapter.

This keeps the remote API's wire names (``claim_id``, ``channel_name``,
epoch-second timestamps, ...) out of the core pipeline.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from commentwatch.core.errors import InvalidResponse
from commentwatch.core.models import Account, Claim, Comment, Page

T = TypeVar("T")


def _require(payload: dict, key: str) -> Any:
    try:
        return payload[key]
    except KeyError:
        raise InvalidResponse(f"Missing field {key!r}") from None


def _as_str(value: Any, key: str) -> str:
    if not isinstance(value, str):
        raise InvalidResponse(f"Field {key!r} must be a string, got {type(value).__name__}")
    return value


def _optional_str(payload: dict, key: str) -> str:
    # Anonymous commenters come without channel fields.
    value = payload.get(key)
    if value is None:
        return ""
    return _as_str(value, key)


def _optional_bool(payload: dict, key: str) -> bool:
    value = payload.get(key, False)
    if not isinstance(value, bool):
        raise InvalidResponse(f"Field {key!r} must be a boolean, got {value!r}")
    return value


def decode_timestamp(value: Any) -> datetime:
    """Decode integer epoch seconds into an aware UTC datetime."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidResponse(f"Timestamp must be integer epoch seconds, got {value!r}")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise InvalidResponse(f"Timestamp out of range: {value!r}") from exc


def account_from_api(payload: dict) -> Account:
    return Account(
        id=_as_str(_require(payload, "id"), "id"),
        name=_optional_str(payload, "name"),
        is_default=_optional_bool(payload, "is_default"),
    )


def claim_from_api(payload: dict) -> Claim:
    return Claim(
        id=_as_str(_require(payload, "claim_id"), "claim_id"),
        name=_optional_str(payload, "name"),
        timestamp=decode_timestamp(_require(payload, "timestamp")),
    )


def comment_from_api(payload: dict) -> Comment:
    return Comment(
        id=_as_str(_require(payload, "comment_id"), "comment_id"),
        claim_id=_as_str(_require(payload, "claim_id"), "claim_id"),
        text=_as_str(_require(payload, "comment"), "comment"),
        commenter_id=_optional_str(payload, "channel_id"),
        commenter_name=_optional_str(payload, "channel_name"),
        commenter_url=_optional_str(payload, "channel_url"),
        is_hidden=_optional_bool(payload, "is_hidden"),
        timestamp=decode_timestamp(_require(payload, "timestamp")),
    )


def page_from_api(body: Any, parse_item: Callable[[dict], T]) -> Page[T]:
    """Decode a ``{"result": {...}}`` envelope into a typed page."""

    if not isinstance(body, dict):
        raise InvalidResponse("Response body is not a JSON object")
    if body.get("error"):
        raise InvalidResponse(f"API returned an error: {body['error']}")

    result = _require(body, "result")
    if not isinstance(result, dict):
        raise InvalidResponse("Field 'result' is not an object")

    raw_items = _require(result, "items")
    if not isinstance(raw_items, list):
        raise InvalidResponse("Field 'items' is not a list")

    items = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise InvalidResponse("Page item is not an object")
        items.append(parse_item(raw))

    try:
        return Page(
            items=items,
            page=int(_require(result, "page")),
            page_size=int(_require(result, "page_size")),
            total_items=int(_require(result, "total_items")),
            total_pages=int(_require(result, "total_pages")),
        )
    except (TypeError, ValueError) as exc:
        raise InvalidResponse(f"Malformed pagination fields: {exc}") from exc
