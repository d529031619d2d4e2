"""
Filtered, paginated listings.

A listing is described once as a base query plus an ordered list of
predicates. The same list filters both the page query and the count query,
so ``total`` always matches the filtered result set.
"""
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session


MAX_LIMIT = 200


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    limit: int

    def envelope(self, key: str, serialize=None) -> dict:
        rows = [serialize(i) for i in self.items] if serialize else list(self.items)
        return {key: rows, "total": self.total, "page": self.page, "limit": self.limit}


def clamp_paging(page: Optional[int], limit: Optional[int], default_limit: int = 10):
    page = max(1, int(page or 1))
    limit = min(max(1, int(limit or default_limit)), MAX_LIMIT)
    return page, limit


def paginate(
    db: Session,
    stmt,
    predicates: Sequence[Any],
    *,
    count_column,
    order_by: Sequence[Any] = (),
    page: Optional[int] = 1,
    limit: Optional[int] = 10,
    scalars: bool = True,
) -> Page:
    """
    Run ``stmt`` filtered by ``predicates`` for one page and count the full set.

    ``stmt`` is a ``select()`` carrying any joins the predicates need;
    ``count_column`` is the primary key of the listed entity, counted distinct
    so joins cannot inflate the total.
    """
    page, limit = clamp_paging(page, limit)
    preds = [p for p in predicates if p is not None]

    filtered = stmt.where(*preds) if preds else stmt
    data_stmt = filtered.order_by(*order_by).offset((page - 1) * limit).limit(limit)
    result = db.execute(data_stmt)
    items = result.scalars().all() if scalars else result.all()

    count_stmt = filtered.with_only_columns(func.count(func.distinct(count_column))).order_by(None)
    total = db.execute(count_stmt).scalar() or 0
    return Page(items=items, total=int(total), page=page, limit=limit)


def count_where(db: Session, column, *predicates) -> int:
    stmt = select(func.count(column))
    if predicates:
        stmt = stmt.where(*predicates)
    return int(db.execute(stmt).scalar() or 0)
