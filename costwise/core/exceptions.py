"""
Core exception classes for Costwise.
"""


class CostwiseError(Exception):
    """Base exception for all Costwise errors."""

    def __init__(self, message: str, details: str = None):
        super().__init__(message)
        self.message = message
        self.details = details


class AuthenticationError(CostwiseError):
    """Raised when building credentials for an account fails."""
    pass


class ConfigurationError(CostwiseError):
    """Raised when configuration is invalid or missing."""
    pass


class GatewayError(CostwiseError):
    """Raised when a cloud API call made by a data gateway fails."""

    def __init__(self, message: str, details: str = None, operation: str = None):
        super().__init__(message, details)
        self.operation = operation


class StateError(CostwiseError):
    """Raised on invalid run transitions or run persistence failures."""
    pass


class ValidationError(CostwiseError):
    """Raised when input validation fails."""
    pass
