"""Domain exceptions raised by the service layer."""


class MarketplaceError(Exception):
    """Base class for failures that map onto an HTTP error response."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BusinessRuleError(MarketplaceError):
    """Input is well formed but breaks a marketplace rule (stock, status, ownership)."""

    status_code = 400


class AccessDeniedError(MarketplaceError):
    """Caller is authenticated but not allowed to act on the resource."""

    status_code = 403


class NotFoundError(MarketplaceError):
    """Referenced row does not exist."""

    status_code = 404


class ConflictError(MarketplaceError):
    """Write would duplicate a unique row."""

    status_code = 409


class AuthenticationError(MarketplaceError):
    """Credentials are missing or do not match."""

    status_code = 401
