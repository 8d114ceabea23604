"""
Exceptions for storecrypt
This is placed such that there is a general error catcher
"""

from typing import Optional


class StoreCryptError(Exception):
    # general container for errors, carries the operation and path involved

    def __init__(self, message: str, operation: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.path = path

    def __str__(self) -> str:
        context = []
        if self.operation:
            context.append(f"operation={self.operation}")
        if self.path is not None:
            context.append(f"path={self.path!r}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class ConfigurationError(StoreCryptError):
    # raised on missing/invalid key material or an unusable mode
    pass


class EncodingError(StoreCryptError):
    # raised when a token or container is malformed or truncated
    pass


class CipherError(StoreCryptError):
    # raised on block alignment or cipher initialization failures
    pass


class NotSupportedError(StoreCryptError):
    # raised by declared-but-unimplemented modes (WinSCP)
    pass


class StreamIOError(StoreCryptError):
    # raised when opening, reading, writing or closing a file fails
    pass


class AuthenticationError(StoreCryptError):
    # raised on a wrong password or failed integrity check
    pass


class OperationCancelledError(StoreCryptError):
    # raised when a streaming copy is interrupted by its cancel event
    pass
