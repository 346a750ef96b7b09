"""
Typed failures of the deal engine.

Services raise these; the exception handler in ``main`` turns each into a JSON
body of the form ``{"error": <class name>, "detail": <message>, ...context}``
with the class's HTTP status, so callers can branch on ``error`` instead of
parsing messages.
"""


class DealError(Exception):
    status_code = 400
    default_detail = "request rejected"

    def __init__(self, detail=None, **context):
        self.detail = detail or self.default_detail
        self.context = context
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail, **self.context}


class InvalidAmount(DealError):
    status_code = 400
    default_detail = "amount must be positive"

class MissingCancelReason(DealError):
    status_code = 400
    default_detail = "a cancellation reason is required"

class InsufficientCredits(DealError):
    status_code = 402
    default_detail = "no view credits remaining"

class RoleMismatch(DealError):
    status_code = 403
    default_detail = "caller does not hold the required role"

class UnlockRevoked(DealError):
    status_code = 403
    default_detail = "access to this project was revoked"

class SensitiveAccessDenied(DealError):
    status_code = 403
    default_detail = "sensitive project details are not available yet"

class NotFound(DealError):
    status_code = 404
    default_detail = "not found"

class DuplicatePurchase(DealError):
    status_code = 409
    default_detail = "payment reference already used for a different purchase"

class ProjectNotLive(DealError):
    status_code = 409
    default_detail = "project is not publicly viewable"

class ProjectDoesNotRequireAddendum(DealError):
    status_code = 409
    default_detail = "project does not require an NDA addendum"

class AlreadySigned(DealError):
    status_code = 409
    default_detail = "offer already signed by this party"

class IllegalTransition(DealError):
    status_code = 409
    default_detail = "offer cannot move from its current state"

class OfferAlreadyExecuted(DealError):
    status_code = 409
    default_detail = "executed offers cannot be cancelled"

class OfferAlreadyActive(DealError):
    status_code = 409
    default_detail = "an active offer already exists for this project"

class StaleOffer(DealError):
    status_code = 409
    default_detail = "offer was modified concurrently, reload and retry"

class NotUnlocked(DealError):
    status_code = 412
    default_detail = "project must be unlocked first"

class MasterNDARequired(DealError):
    status_code = 412
    default_detail = "master NDA must be signed first"
