"""Error types for the LINE authorization flow.

Each error carries the HTTP status it should be answered with and a short
machine-readable kind used in log lines. Endpoints turn them into responses
with to_response().
"""

from fastapi.responses import PlainTextResponse


class OAuthError(Exception):
    """Base class for errors that terminate an authorization request."""

    status_code = 500
    kind = "UNEXPECTED"

    def __init__(self, message: str, status_code: int = None, kind: str = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if kind is not None:
            self.kind = kind

    def to_response(self) -> PlainTextResponse:
        return PlainTextResponse(self.message, status_code=self.status_code)


class ClientRequestInvalid(OAuthError):
    """Missing or malformed OAuth request parameters."""

    status_code = 400
    kind = "CLIENT_REQUEST_INVALID"


class CsrfFailure(OAuthError):
    status_code = 400
    kind = "CSRF_MISSING"


class StateFailure(OAuthError):
    """Missing, expired, mismatched or corrupt state / session binding."""

    status_code = 400
    kind = "STATE_NOT_FOUND"


class IdpFailure(OAuthError):
    """LINE answered with an error during code exchange or profile fetch.

    The upstream body is kept for logging only; it is never sent to the
    user agent.
    """

    status_code = 500
    kind = "IDP_EXCHANGE_FAILED"

    def __init__(self, message: str, status_code: int = None, kind: str = None, upstream_body: str = ""):
        super().__init__(message, status_code=status_code, kind=kind)
        self.upstream_body = upstream_body


class AccountNotLinked(OAuthError):
    status_code = 403
    kind = "ACCOUNT_NOT_LINKED"

    def __init__(self, message: str = "Account not found. Please register via the app first."):
        super().__init__(message)


class UnexpectedFailure(OAuthError):
    status_code = 500
    kind = "UNEXPECTED"

    def __init__(self, message: str = "Internal server error", kind: str = None):
        super().__init__(message, kind=kind)
