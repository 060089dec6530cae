"""
Exceptions raised by the domain modules.

Each carries the HTTP status the web layer answers with.
"""


class FederationError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(FederationError):
    status_code = 400


class PermissionDenied(FederationError):
    status_code = 403


class NotFound(FederationError):
    status_code = 404


class Conflict(FederationError):
    status_code = 409


class InvalidTransition(Conflict):
    """Application status change not allowed from the current status."""
