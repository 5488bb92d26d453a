import math


def clamp_page(page: int | None, limit: int | None, *, default: int, maximum: int) -> tuple[int, int]:
    """Normalize page/limit query values: page >= 1, 1 <= limit <= maximum."""
    try:
        page_value = int(page) if page is not None else 1
    except (TypeError, ValueError):
        page_value = 1
    try:
        limit_value = int(limit) if limit is not None else default
    except (TypeError, ValueError):
        limit_value = default
    page_value = max(page_value, 1)
    limit_value = min(max(limit_value, 1), maximum)
    return page_value, limit_value


def paginate(query, page: int, limit: int, serialize) -> dict:
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serialize(row) for row in rows],
        "total": int(total),
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }
