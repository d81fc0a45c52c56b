import sqlmodel

from lyceum.core.enums import PullKind

from ._base import BaseModel


class PullSubmission(BaseModel, table=True):
    """A debited pull request, keyed by the client's submission id.

    Replaying the same submission never debits again; an unfinished multi pull is
    resumed from ``completed_draws``.
    """

    __tablename__: str = "pull_submissions"
    __table_args__ = (
        sqlmodel.UniqueConstraint("user_id", "submission_id", name="uq_pull_submission"),
    )

    id: int = sqlmodel.Field(primary_key=True, index=True, default=None)
    user_id: str = sqlmodel.Field(index=True, max_length=128)
    submission_id: str = sqlmodel.Field(max_length=64)
    pool_id: str = sqlmodel.Field(foreign_key="reward_pools.id")
    kind: PullKind
    cost: int = sqlmodel.Field(ge=0)
    requested_draws: int = sqlmodel.Field(ge=1)
    completed_draws: int = sqlmodel.Field(default=0, ge=0)
    version: int = sqlmodel.Field(default=0)

    @property
    def is_complete(self) -> bool:
        return self.completed_draws >= self.requested_draws
