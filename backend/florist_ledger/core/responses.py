"""List envelopes for the branch, audit, stock and history endpoints."""


def list_response(items: list) -> dict:
    return {"items": items, "total": len(items)}


def paginated_response(items: list, total: int, skip: int, limit: int) -> dict:
    """One page of stock rows or history entries; ``total`` counts all matches."""
    return {
        "items": items,
        "total": total,
        "skip": skip,
        "limit": limit,
        "has_more": (skip + len(items)) < total,
    }
