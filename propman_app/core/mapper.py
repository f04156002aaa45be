import enum
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import inspect

T = TypeVar("T", bound=BaseModel)

SENSITIVE_COLUMNS = {"hashed_password", "hashed_token", "public_token_hash"}


def _plain(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


class ORMMapper:
    @staticmethod
    def one(item, schema: Type[T]) -> T:
        return schema.model_validate(item)

    @staticmethod
    def many(items: Iterable, schema: Type[T]) -> list[T]:
        return [schema.model_validate(item) for item in items]

    @staticmethod
    def snapshot(item) -> dict | None:
        """Column values of an ORM row as JSON-safe data, secrets removed."""
        if item is None:
            return None
        mapper = inspect(item).mapper
        return {
            attr.key: _plain(getattr(item, attr.key))
            for attr in mapper.column_attrs
            if attr.key not in SENSITIVE_COLUMNS
        }
