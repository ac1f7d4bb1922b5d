# services/errors.py


class UpstreamError(Exception):
    """A third-party source could not be reached or answered with garbage."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class CatalogError(UpstreamError):
    pass


class GradesError(UpstreamError):
    pass


class RatingsError(UpstreamError):
    pass


class NarrativeError(UpstreamError):
    pass
