import uuid
from typing import Optional

from sqlalchemy import func, or_, select

from core.paginate import PageParams
from models.enums import RegistrationStatus, UserRole
from models.models import User
from models.utils import normalize_email

from .base_repo import BaseRepo


class UserRepo(BaseRepo):
    model = User

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def email_taken(
        self, email: str, exclude_id: Optional[uuid.UUID] = None
    ) -> bool:
        stmt = select(User.id).where(User.email == normalize_email(email))
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        result = await self.db.execute(stmt)
        return result.first() is not None

    async def list_users(
        self,
        params: PageParams,
        *,
        role: Optional[UserRole] = None,
        status: Optional[RegistrationStatus] = None,
        search: Optional[str] = None,
        ids: Optional[set] = None,
    ):
        stmt = select(User)
        if role is not None:
            stmt = stmt.where(User.role == role)
        if status is not None:
            stmt = stmt.where(User.registration_status == status)
        if ids is not None:
            stmt = stmt.where(User.id.in_(ids))
        if search:
            pattern = f"%{search.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        return await self.page(stmt, params)
