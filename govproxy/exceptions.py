"""
govproxy Exceptions

Custom exception classes for governance reconciliation and submission.

Errors raised before any transaction is broadcast (validation, keyfile,
connection, query) are fatal. Submission errors are scoped to one batch and
are reported without stopping the rest of the plan.
"""

from typing import Optional


class GovProxyError(Exception):
    """Base exception for govproxy."""
    pass


class ValidationError(GovProxyError):
    """User input or plan parameters are invalid."""
    pass


class InvalidConviction(ValidationError):
    """Conviction is not one of the enumerated levels."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid conviction: {value!r}. Valid options: None, Locked1x, "
            f"Locked2x, Locked3x, Locked4x, Locked5x, Locked6x"
        )


class KeyfileError(GovProxyError):
    """Proxy mnemonic could not be obtained."""
    pass


class ConfigurationError(GovProxyError):
    """Configuration file or environment value is invalid."""
    pass


class ChainError(GovProxyError):
    """Chain client error."""
    pass


class ChainConnectionError(ChainError):
    """Connection to the chain endpoint failed or was lost."""
    pass


class ChainQueryError(ChainError):
    """A state query against the chain failed."""
    pass


class LifecycleError(GovProxyError):
    """Illegal transaction status transition."""
    pass


class SubmissionError(GovProxyError):
    """A submitted batch did not succeed. Scoped to that batch only."""
    pass


class DispatchError(SubmissionError):
    """Extrinsic was included but its dispatch failed."""

    def __init__(self, module: str, name: str, description: str = ""):
        self.module = module
        self.name = name
        self.description = description
        message = f"{module}.{name}"
        if description:
            message = f"{message}: {description}"
        super().__init__(message)

    def as_tuple(self):
        return (self.module, self.name, self.description)


class TransportError(SubmissionError):
    """Extrinsic never reached a successful block (dropped, invalid, usurped, timed out)."""

    def __init__(self, status: str, message: Optional[str] = None):
        self.status = status
        super().__init__(message or f"Transaction {status}")
