"""Exception types shared by the AI dispatcher, the callers and the ingestion functions."""


class AiError(RuntimeError):
    """Base class for every failure raised on the AI call path."""


class AiUnavailableError(AiError):
    """No usable provider credential and no relay configured; the AI feature is disabled."""

    def __init__(self, message: str = "AI features are not configured.") -> None:
        super().__init__(message)


class DispatchError(AiError):
    """The provider or the relay could not produce a response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(AiError):
    """The model answered, but not with the JSON shape the caller declared."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text


class DataStoreError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class IngestionError(ValueError):
    """Webhook payload cannot be turned into a ticket."""
