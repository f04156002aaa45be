from enum import Enum
from typing import Iterable, List, Type, TypeVar

E = TypeVar("E", bound=Enum)

LEGACY_SPELLINGS = {"property_manager": "propertymanager"}


def validate_enum(
    value: str | Enum,
    enum_cls: Type[E],
    *,
    field: str,
) -> E:
    if isinstance(value, enum_cls):
        return value

    if isinstance(value, str):
        if value in LEGACY_SPELLINGS:
            raise ValueError(
                f"Invalid {field}: {value}. Use '{LEGACY_SPELLINGS[value]}' instead"
            )
        try:
            return enum_cls(value)
        except ValueError:
            pass

    allowed = ", ".join(e.value for e in enum_cls)
    raise ValueError(f"Invalid {field}: {value}. Allowed values: {allowed}")


def validate_enum_list(values: Iterable, enum_cls: Type[E], *, field: str) -> List[E]:
    seen: List[E] = []
    for value in values:
        member = validate_enum(value, enum_cls, field=field)
        if member not in seen:
            seen.append(member)
    return seen
