"""Error taxonomy for the referral core.

Business-rule errors carry a message that is safe to show to the caller.
InternalError wraps store failures; its message stays generic and the
underlying cause is logged where it is raised.
"""


class ReferralError(Exception):
    """Base class for all errors raised by referral operations."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ReferralError):
    """Malformed or out-of-range input."""

    kind = "validation"
    status_code = 400


class DuplicateEmailError(ReferralError):
    """Email is already registered."""

    kind = "duplicate_email"
    status_code = 400

    def __init__(self, message: str = "Email already registered"):
        super().__init__(message)


class InvalidReferralCodeError(ReferralError):
    """Referral code does not belong to any user."""

    kind = "invalid_referral_code"
    status_code = 400

    def __init__(self, message: str = "Invalid referral code"):
        super().__init__(message)


class UserNotFoundError(ReferralError):
    """No user with the given email."""

    kind = "user_not_found"
    status_code = 404

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class NoPendingRewardsError(ReferralError):
    """User has nothing left to claim."""

    kind = "no_pending_rewards"
    status_code = 400

    def __init__(self, message: str = "No pending rewards to claim"):
        super().__init__(message)


class InternalError(ReferralError):
    """Store or transaction failure."""

    kind = "internal"
    status_code = 500
