from typing import ClassVar, FrozenSet

from pydantic import BaseModel, ValidationInfo, field_validator


class PartialUpdate(BaseModel):
    """
    Body of a PUT that only touches the fields it sends.

    An explicit ``null`` is accepted only for the names in ``clearable``;
    every other field must carry a value when present.
    """

    clearable: ClassVar[FrozenSet[str]] = frozenset()

    @field_validator("*", mode="before")
    @classmethod
    def _reject_null(cls, value, info: ValidationInfo):
        if value is None and info.field_name not in cls.clearable:
            raise ValueError("must not be null")
        return value
