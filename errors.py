"""
Error taxonomy shared by every service module.

Services raise these; main.py turns them into JSON responses of the form
{"detail": <message>, "error": <kind>} with the matching HTTP status.
"""
from typing import Optional


class HiveHelpError(Exception):
    status_code = 500
    kind = "internal"
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(HiveHelpError):
    status_code = 400
    kind = "invalid_input"
    default_message = "Invalid input"


class Unauthenticated(HiveHelpError):
    status_code = 401
    kind = "unauthenticated"
    default_message = "Not authenticated"


class InvalidCredentials(HiveHelpError):
    status_code = 400
    kind = "invalid_credentials"
    default_message = "Invalid email or password"


class Forbidden(HiveHelpError):
    status_code = 403
    kind = "forbidden"
    default_message = "Forbidden"


class AccountBlocked(Forbidden):
    kind = "account_blocked"
    default_message = "Your account has been blocked."


class NotFound(HiveHelpError):
    status_code = 404
    kind = "not_found"
    default_message = "Not found"


class InvalidState(HiveHelpError):
    status_code = 400
    kind = "invalid_state"
    default_message = "Operation not allowed in the current state"


class InvalidTransition(InvalidState):
    kind = "invalid_transition"
    default_message = "Status transition not allowed"


class InsufficientStock(HiveHelpError):
    status_code = 400
    kind = "insufficient_stock"
    default_message = "Not enough stock available."


class Conflict(HiveHelpError):
    status_code = 409
    kind = "conflict"
    default_message = "Conflict"


class EmailTaken(Conflict):
    # registration reports duplicates as a plain 400
    status_code = 400
    default_message = "Email already registered"


class RateLimited(HiveHelpError):
    status_code = 429
    kind = "rate_limited"
    default_message = "Too many login attempts. Please try again later."


class Internal(HiveHelpError):
    pass
