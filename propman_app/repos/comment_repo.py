import uuid
from typing import List

from sqlalchemy import select

from models.enums import ResourceType
from models.models import Comment

from .base_repo import BaseRepo


class CommentRepo(BaseRepo):
    model = Comment

    async def thread(
        self,
        context_type: ResourceType,
        context_id: uuid.UUID,
        *,
        include_internal: bool = True,
    ) -> List[Comment]:
        stmt = select(Comment).where(
            Comment.context_type == context_type, Comment.context_id == context_id
        )
        if not include_internal:
            stmt = stmt.where(Comment.is_internal_note.is_(False))
        result = await self.db.execute(stmt.order_by(Comment.created_at, Comment.id))
        return list(result.scalars().all())

    async def create(self, comment: Comment) -> Comment:
        self.db.add(comment)
        await self.flush()
        await self.db.refresh(comment, ["sender"])
        return comment
