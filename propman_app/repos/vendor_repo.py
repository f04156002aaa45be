import uuid
from typing import List, Optional

from sqlalchemy import func, select

from core.paginate import PageParams
from models.models import Vendor

from .base_repo import BaseRepo


class VendorRepo(BaseRepo):
    model = Vendor

    async def list_vendors(
        self,
        params: PageParams,
        *,
        service: Optional[str] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ):
        stmt = select(Vendor)
        if not include_inactive:
            stmt = stmt.where(Vendor.is_active.is_(True))
        if search:
            stmt = stmt.where(func.lower(Vendor.name).like(f"%{search.lower()}%"))
        items, total = await self.page(stmt, params)
        if service:
            # services is a JSON list; filtered in Python to stay portable
            items = [v for v in items if service in (v.services or [])]
            total = len(items)
        return items, total

    async def ids_for_email(self, email: Optional[str]) -> List[uuid.UUID]:
        if not email:
            return []
        result = await self.db.execute(
            select(Vendor.id).where(
                func.lower(Vendor.email) == email.lower(), Vendor.is_active.is_(True)
            )
        )
        return list(result.scalars().all())
