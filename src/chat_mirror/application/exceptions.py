from __future__ import annotations


class AppError(Exception):
    """Base application error."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(detail)


class NotFoundError(AppError):
    pass


class ValidationError(AppError):
    pass


class MalformedPayloadError(ValidationError):
    """A frame, snapshot or delta is missing required fields."""


class UpstreamError(AppError):
    """The external chat service could not be reached or answered with an error."""

    def __init__(self, detail: str = "", status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(detail)


class UpstreamWriteFailure(UpstreamError):
    """Posting to the external service failed. Never retried automatically."""


class TransportError(AppError):
    """A push transport could not be opened or maintained."""


class ExhaustedRetriesError(TransportError):
    pass


class RouteMissError(AppError):
    """A broadcast target connection vanished between routing and send."""
