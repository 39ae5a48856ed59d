from __future__ import annotations


class LyricAtlasError(RuntimeError):
    pass


class ConfigurationError(LyricAtlasError):
    pass


class NotFoundError(LyricAtlasError):
    pass


class SourceError(LyricAtlasError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RequestTimeout(SourceError, TimeoutError):
    def __init__(self, message: str = "Request timed out"):
        super().__init__(message, status_code=408)


def user_status(exc: BaseException) -> int:
    """Map a failure to the status code a caller sees."""
    if isinstance(exc, RequestTimeout):
        return 408
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, SourceError) and exc.status_code is not None and exc.status_code >= 500:
        return 502
    return 500


class AggregateError(LyricAtlasError):
    """Every branch of a lookup failed or came back empty."""

    def __init__(self, errors: list[tuple[str, BaseException]]):
        self.errors = list(errors)
        message = "; ".join(f"{label}: {exc}" for label, exc in self.errors)
        super().__init__(message or "Lyrics not found after checking all sources.")

    @property
    def status_code(self) -> int:
        # upstream 5xx beats timeout beats other faults beats plain absence
        codes = [user_status(exc) for _label, exc in self.errors]
        for code in (502, 408, 500):
            if code in codes:
                return code
        return 404
