import sqlmodel

from ._base import BaseModel


class ProgressionReceipt(BaseModel, table=True):
    """Marks a client progression submission as applied."""

    __tablename__: str = "progression_receipts"
    __table_args__ = (
        sqlmodel.UniqueConstraint("user_id", "submission_id", name="uq_progression_receipt"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    submission_id: str = sqlmodel.Field(max_length=64)
