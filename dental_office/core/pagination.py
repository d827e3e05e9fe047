import math

from pydantic import BaseModel

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


def paginate(query, page: int = DEFAULT_PAGE, limit: int = DEFAULT_LIMIT):
    """Return one page of ``query`` and its pagination block."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, PaginationResponse(page=page, limit=limit, total=total, pages=math.ceil(total / limit))
