"""Error taxonomy shared by the mutation layer and the HTTP boundary."""


class ChatSyncError(Exception):
    """Base error. Carries the HTTP status the boundary should answer with."""

    status_code = 500
    kind = "Error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class MutationError(ChatSyncError):
    """A mutator rejected its intent; the enclosing transaction is discarded."""


class Unauthenticated(MutationError):
    status_code = 401
    kind = "Unauthenticated"

    def __init__(self, message: str = "Must be logged in"):
        super().__init__(message)


class Forbidden(MutationError):
    status_code = 403
    kind = "Forbidden"


class ValidationError(ChatSyncError):
    status_code = 400
    kind = "ValidationError"


class UnknownMutator(ChatSyncError):
    status_code = 404
    kind = "UnknownMutator"


class PersistenceError(ChatSyncError):
    status_code = 409
    kind = "PersistenceError"


class UpstreamError(ChatSyncError):
    """Failure of an outbound HTTP service, surfaced with its message."""

    status_code = 502
    kind = "UpstreamError"
