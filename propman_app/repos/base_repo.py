from typing import Any, Sequence, Tuple

from pydantic.alias_generators import to_snake
from sqlalchemy import func, select

from core.paginate import PageParams


class BaseRepo:
    model: Any = None

    def __init__(self, db):
        self.db = db

    async def get(self, obj_id) -> Any:
        return await self.db.get(self.model, obj_id)

    async def add(self, obj):
        self.db.add(obj)
        await self.flush()
        return obj

    async def flush(self):
        await self.db.flush()

    async def delete(self, obj) -> None:
        await self.db.delete(obj)
        await self.flush()

    def _order_by(self, params: PageParams):
        column = None
        if params.sort_by:
            name = to_snake(params.sort_by)
            if name in self.model.__table__.columns:
                column = getattr(self.model, name)
        if column is None:
            column = self.model.created_at
        return column.asc() if params.sort_order == "asc" else column.desc()

    async def page(self, stmt, params: PageParams) -> Tuple[Sequence[Any], int]:
        total = await self.db.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        result = await self.db.execute(
            stmt.order_by(self._order_by(params), self.model.id)
            .offset(params.offset)
            .limit(params.limit)
        )
        return result.scalars().all(), int(total or 0)
