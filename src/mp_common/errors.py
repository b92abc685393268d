"""Unified error codes and custom exceptions.

Every error carries a numeric code, a stable string error_code and a suggested
HTTP status. The core raises these; only src/main.py maps them to responses.

Error code ranges:
  1xxx: User/Auth
  2xxx: Wallet
  3xxx: Listing
  4xxx: Order/Dispute
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
        error_code: str = "INTERNAL_ERROR",
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        self.error_code = error_code
        super().__init__(message)


# --- 1xxx: User/Auth ---

class UserNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(1001, f"User not found: {user_id}", 404, "USER_NOT_FOUND")


class NotAuthorizedError(AppError):
    def __init__(self, detail: str = "Not authorized") -> None:
        super().__init__(1002, detail, 403, "NOT_AUTHORIZED")


class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid or expired token", 401, "INVALID_CREDENTIALS")


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403, "ACCOUNT_DISABLED")


# --- 2xxx: Wallet ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} cents, available {available} cents",
            422,
            "INSUFFICIENT_BALANCE",
        )


class InvalidAmountError(AppError):
    def __init__(self, amount: int) -> None:
        super().__init__(2002, f"Amount must be positive, got {amount}", 400, "INVALID_AMOUNT")


class NoEscrowError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(2003, f"No escrow held for order {order_id}", 409, "NO_ESCROW")


class EscrowAlreadyHeldError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(2004, f"Escrow already held for order {order_id}", 409, "ESCROW_ALREADY_HELD")


# --- 3xxx: Listing ---

class ListingNotAvailableError(AppError):
    def __init__(self, listing_id: str) -> None:
        super().__init__(3001, f"Listing is not available: {listing_id}", 422, "LISTING_NOT_AVAILABLE")


class CannotBuyOwnListingError(AppError):
    def __init__(self) -> None:
        super().__init__(3002, "Cannot buy your own listing", 422, "CANNOT_BUY_OWN")


# --- 4xxx: Order/Dispute ---

class OrderNotFoundError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4001, f"Order not found: {order_id}", 404, "ORDER_NOT_FOUND")


class InvalidStatusTransitionError(AppError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            4002,
            f"Cannot transition from {current} to {target}",
            409,
            "INVALID_STATUS_TRANSITION",
        )


class DuplicateDisputeError(AppError):
    def __init__(self, order_id: str) -> None:
        super().__init__(4003, f"Dispute already exists for order {order_id}", 409, "DUPLICATE_DISPUTE")


class InvalidResolutionError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4004, f"Invalid dispute resolution: {detail}", 422, "INVALID_RESOLUTION")


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500, "INTERNAL_ERROR")
