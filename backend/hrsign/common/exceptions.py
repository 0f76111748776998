"""Typed failures returned by the signature engine and its collaborators.

Routers translate these into HTTP responses using ``status_code``; storage or
driver errors never reach the API layer untyped.
"""


class ESignError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ESignError):
    """Missing entity, or one owned by another company (existence is not leaked)."""

    status_code = 404


class ConflictError(ESignError):
    status_code = 409


class IntegrityViolationError(ESignError):
    status_code = 422

    def __init__(self, message: str, expected_hash: str, current_hash: str):
        super().__init__(message)
        self.expected_hash = expected_hash
        self.current_hash = current_hash


class ValidationFailedError(ESignError):
    status_code = 400


class DependencyFailureError(ESignError):
    status_code = 503


class StorageError(DependencyFailureError):
    pass


class StampingError(DependencyFailureError):
    pass
