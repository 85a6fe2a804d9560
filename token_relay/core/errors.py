"""
Error types raised inside the token relay pipeline.

None of these ever reach an HTTP caller as a failure status: extraction errors
degrade to empty claims, store errors are logged, relay errors become the
``error`` field of the relay response.
"""


class TokenRelayError(Exception):
    """Base exception for the token relay service."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


class ExtractionError(TokenRelayError):
    """The platform token could not be decoded into claims."""

    def __init__(self, message: str = "Token could not be decoded"):
        super().__init__("EXTRACTION_ERROR", message)


class StoreError(TokenRelayError):
    """Persisting or reading token records failed."""

    def __init__(self, operation: str, message: str = "Token store failure"):
        self.operation = operation
        super().__init__("STORE_ERROR", f"{operation}: {message}")
