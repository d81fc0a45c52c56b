from typing import Any

import sqlmodel

from lyceum.core.enums import EventType

from ._base import BaseModel


class EventLog(BaseModel, table=True):
    __tablename__: str = "event_logs"

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    event_type: EventType
    context: dict[str, Any] = sqlmodel.Field(sa_column=sqlmodel.Column(sqlmodel.JSON))
