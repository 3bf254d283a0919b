"""Error taxonomy shared by the workflow services and the HTTP layer.

Every error carries the HTTP status the API answers with; the app factory
registers a single handler that renders ``{'error': message}``.
"""


class PadelError(Exception):
    status_code = 400

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message}
        payload.update(self.details)
        return payload


class ValidationError(PadelError):
    """Incomplete or contradictory input. No state change happened."""
    status_code = 400


class NotAuthorized(PadelError):
    status_code = 403


class NotFound(PadelError):
    status_code = 404


class AlreadyFinalized(PadelError):
    """Mutation attempted on a confirmed or cancelled match."""
    status_code = 409


MatchAlreadyFinalized = AlreadyFinalized


class CapacityExceeded(PadelError):
    status_code = 409


class MatchFull(CapacityExceeded):
    pass


class ConflictError(PadelError):
    """A uniqueness constraint rejected the write: the resource is taken."""
    status_code = 409


class RecordDecodeError(PadelError):
    """A stored row could not be mapped onto its domain record."""
    status_code = 500
