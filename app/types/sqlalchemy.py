import datetime
from collections.abc import Callable

from sqlalchemy import DateTime, types
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, MappedAsDataclass
from sqlalchemy.types import TypeDecorator

from app.types.exceptions import MissingTZInfoInDatetimeError

SessionLocalType = Callable[[], AsyncSession]


class TZDateTime(TypeDecorator):
    """
    Timezone aware datetime, stored as a naive UTC datetime since SQLite has no timezone support.

    Naive datetimes are refused when writing. Values read from the database are UTC.
    See https://docs.sqlalchemy.org/en/20/core/custom_types.html#store-timezone-aware-timestamps-as-timezone-naive-utc
    """

    # Migrations reference this type: create a new type instead of changing it
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise MissingTZInfoInDatetimeError()
        return value.astimezone(datetime.UTC).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=datetime.UTC)


class Base(MappedAsDataclass, DeclarativeBase):
    """
    Declarative base of every model. `datetime` annotations are mapped to `TZDateTime`.

    See https://docs.sqlalchemy.org/en/20/orm/declarative_tables.html#customizing-the-type-map
    """

    type_annotation_map = {
        bool: types.Boolean(),
        datetime.datetime: TZDateTime(),
        str: types.String(),
    }
