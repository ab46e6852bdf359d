# Overview: Page/limit parsing and paginated query execution for list endpoints.

from __future__ import annotations

from flask import current_app

from ..validation import ValidationError


def parse_pagination(args) -> tuple[int, int]:
    """
    Read page/limit from request args.

    page defaults to 1, limit to DEFAULT_PAGE_LIMIT and is capped at
    MAX_PAGE_LIMIT. Non-integer or non-positive values are rejected.
    """
    default_limit = current_app.config["DEFAULT_PAGE_LIMIT"]
    max_limit = current_app.config["MAX_PAGE_LIMIT"]

    page = _positive_int(args.get("page"), "page", 1)
    limit = _positive_int(args.get("limit"), "limit", default_limit)
    return page, min(limit, max_limit)


def _positive_int(raw, field: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer")
    if value < 1:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def paginate(query, *, page: int, limit: int) -> tuple[list, dict]:
    """Execute query for one page; returns (rows, pagination metadata)."""
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = (total + limit - 1) // limit
    return rows, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
    }
