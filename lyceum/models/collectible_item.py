import sqlmodel

from lyceum.core.enums import RarityTier

from ._base import BaseModel


class CollectibleItem(BaseModel, table=True):
    __tablename__: str = "collectible_items"

    id: str = sqlmodel.Field(primary_key=True, max_length=64)
    name: str = sqlmodel.Field(max_length=100, index=True)
    school: str | None = sqlmodel.Field(default=None, max_length=100)
    rarity: RarityTier = sqlmodel.Field(index=True)
    base_attributes: dict[str, float] = sqlmodel.Field(
        default_factory=dict, sa_column=sqlmodel.Column(sqlmodel.JSON)
    )

    def __str__(self) -> str:
        return f"{self.name} ({self.id})"
