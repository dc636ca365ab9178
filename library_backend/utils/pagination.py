import math
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Query


def paginate(query: Query, page: int = 1, limit: int = 20) -> Tuple[List[Any], Dict[str, int]]:
    """Apply offset/limit to a query and return (items, pagination meta)."""
    page = max(page, 1)
    limit = max(limit, 1)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if total else 0,
    }
