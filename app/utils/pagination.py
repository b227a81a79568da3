from typing import Any, Dict

from sqlalchemy import func
from sqlmodel import Session, select

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


def paginate(*, session: Session, query, page: int = 1, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    """Run one page of a select. Bad page numbers fall back to 1, bad limits to the default."""
    page = max(page, 1)
    limit = min(limit, MAX_LIMIT) if limit >= 1 else DEFAULT_LIMIT

    total = session.exec(
        select(func.count()).select_from(query.order_by(None).subquery())
    ).one()
    results = session.exec(query.offset((page - 1) * limit).limit(limit)).all()

    return {
        "results": results,
        "total_items": total,
        "total_pages": -(-total // limit),
        "current_page": page,
        "limit": limit,
    }
