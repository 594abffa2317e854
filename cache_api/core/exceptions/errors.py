from fastapi import status


class CacheAPIError(Exception):
    """Base error carrying the HTTP status and the public error text."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.error
        super().__init__(self.message)


# Client errors: raised before any cache or chain access


class ClientError(CacheAPIError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad request"


class InvalidAddressError(ClientError):
    error = "Invalid contract address"


class ContractNotAllowedError(ClientError):
    error = "Contract not whitelisted"


class UnsupportedFunctionError(ClientError):
    error = "Unsupported function"


class MissingParametersError(ClientError):
    error = "Missing parameters"


class InvalidParameterError(ClientError):
    error = "Invalid parameter"


# Downstream failures


class ChainCallError(CacheAPIError):
    error = "Failed to fetch data"


class CacheStoreError(CacheAPIError):
    error = "Cache store error"


class CacheWriteError(CacheStoreError):
    error = "Failed to store result"
