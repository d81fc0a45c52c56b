import sqlmodel

from ._base import BaseModel


class OwnedItem(BaseModel, table=True):
    __tablename__: str = "owned_items"
    __table_args__ = (sqlmodel.UniqueConstraint("user_id", "item_id", name="uq_owned_item"),)

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    item_id: str = sqlmodel.Field(foreign_key="collectible_items.id", index=True)
    level: int = sqlmodel.Field(default=1, ge=1)
    experience: int = sqlmodel.Field(default=0, ge=0)
    duplicate_count: int = sqlmodel.Field(default=0, ge=0)
    enhanced_attributes: dict[str, int] = sqlmodel.Field(
        default_factory=dict, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )
    version: int = sqlmodel.Field(default=0)
