from typing import Any, ClassVar, Literal

from fastapi import status

type ErrorAction = Literal["top_up", "retry"]


class LyceumError(Exception):
    """Base class for every error the services raise on purpose.

    Each subclass carries a stable ``kind`` so callers can branch on it, the HTTP
    status the API answers with, and a user-facing message.
    """

    kind: ClassVar[str] = "error"
    status_code: ClassVar[int] = status.HTTP_400_BAD_REQUEST
    action: ClassVar[ErrorAction] = "retry"
    default_message: ClassVar[str] = "Something went wrong, please try again."

    def __init__(self, message: str | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)


class InsufficientCurrencyError(LyceumError):
    kind = "insufficient_currency"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    action = "top_up"
    default_message = "You don't have enough tickets for this pull."

    def __init__(self, *, balance: int, required: int) -> None:
        super().__init__(
            f"You don't have enough tickets. Current: {balance}, required: {required}",
            balance=balance,
            required=required,
        )


class ConfigurationError(LyceumError):
    kind = "configuration_error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The gacha pool is misconfigured. Please try again later."


class EmptyRarityPoolError(ConfigurationError):
    def __init__(self, rarity: str) -> None:
        super().__init__(f"No collectible items exist for rarity: {rarity}", rarity=rarity)


class NotFoundError(LyceumError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "The requested resource was not found."


class ConflictError(LyceumError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Your data was changed on another device. Please try again."


class NoDuplicatesAvailableError(LyceumError):
    kind = "no_duplicates_available"
    default_message = "This philosopher has no duplicates to use for enhancement."
