from typing import Any, Iterable, Optional

from fastapi import Query
from pydantic import BaseModel


class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        sortBy: Optional[str] = Query(None),
        sortOrder: str = Query("desc", pattern="^(asc|desc)$"),
    ):
        self.page = page
        self.limit = limit
        self.sort_by = sortBy
        self.sort_order = sortOrder

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class PaginatePage:
    def get_list_json_dumps(self, items: Iterable[BaseModel]):
        return [p.model_dump(mode="json", by_alias=True) for p in items]

    def ok(self, data: Any = None, message: Optional[str] = None) -> dict:
        body: dict = {"success": True}
        if message:
            body["message"] = message
        if data is not None:
            body["data"] = (
                data.model_dump(mode="json", by_alias=True) if isinstance(data, BaseModel) else data
            )
        return body

    def page(
        self,
        items: Iterable[BaseModel],
        total: int,
        params: PageParams,
        message: Optional[str] = None,
    ) -> dict:
        data = self.get_list_json_dumps(items)
        body = self.ok(data=data, message=message)
        body.update(
            count=len(data),
            total=total,
            page=params.page,
            limit=params.limit,
        )
        return body
