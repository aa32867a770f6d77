from __future__ import annotations


class SearchError(RuntimeError):
    def __init__(self, message: str, *, code: str = "search_failed"):
        super().__init__(message)
        self.code = code


class ExternalServiceUnavailable(SearchError):
    """The profile store could not be reached within the turn budget."""

    def __init__(self, message: str = "Profile store is unavailable.", *, code: str = "store_unavailable"):
        super().__init__(message, code=code)


class ExtractionFailure(SearchError):
    """The model call failed, timed out or returned unusable output."""

    def __init__(self, message: str, *, code: str = "extraction_failed"):
        super().__init__(message, code=code)


class FormatterOverflow(SearchError):
    def __init__(self, message: str = "Rendered block exceeds the channel ceiling.", *, code: str = "formatter_overflow"):
        super().__init__(message, code=code)
