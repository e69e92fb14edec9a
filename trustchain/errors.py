class TrustChainError(Exception):
    """Base error. `extra` is merged into the JSON error body."""

    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        return {"error": self.message, "code": type(self).__name__, **self.extra}


class InvalidInput(TrustChainError):
    status_code = 400


class UploadTooLarge(InvalidInput):
    status_code = 413


class NoteTooLarge(InvalidInput):
    """An encoded note does not fit in the ledger's note field."""


class ConfigurationMissing(TrustChainError):
    status_code = 400


class InsufficientFunds(TrustChainError):
    status_code = 400


class NotFound(TrustChainError):
    status_code = 404


class NoProofData(TrustChainError):
    status_code = 422


class UpstreamFailure(TrustChainError):
    status_code = 502
