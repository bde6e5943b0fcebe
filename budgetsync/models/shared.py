from decimal import Decimal
from typing import Annotated, ClassVar
from pydantic import BaseModel, PlainSerializer, model_validator
from datetime import datetime

# Decimal in Python, plain JSON number on the wire.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class TimestampMixin(BaseModel):
    created_at: datetime | None = None


class PartialUpdate(BaseModel):
    """Base for PATCH bodies.

    Omitted fields are left untouched. An explicit null is only accepted for
    the columns named in ``nullable_fields``; every other column is NOT NULL.
    """
    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_nulls_for_required_columns(self):
        cleared = sorted(
            name for name in self.model_fields_set
            if getattr(self, name) is None and name not in self.nullable_fields
        )
        if cleared:
            raise ValueError(f"{', '.join(cleared)} cannot be null")
        return self


def to_db_payload(body: BaseModel, partial: bool = False) -> dict:
    """Dump a request model into a JSON-safe dict for PostgREST.

    Decimals are sent as strings so numeric columns keep their exact value.
    Partial updates keep explicit nulls (e.g. clearing ``category_id``).
    """
    if partial:
        return body.model_dump(mode="json", exclude_unset=True)
    return body.model_dump(mode="json", exclude_none=True)
