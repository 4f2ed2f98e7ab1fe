"""Error types raised by the client.

Everything deriving from VirusTotalError is recoverable and meant to be caught
by the direct caller. ShapeAssertionError is kept outside that hierarchy on
purpose, it is only raised by the ``mustGet*`` accessors.
"""

from typing import Optional


class VirusTotalError(Exception):
    """Base error for all client operations."""


class TransportError(VirusTotalError):
    """The HTTP exchange itself failed or returned something unusable."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class APIError(VirusTotalError):
    """The API answered with an error envelope."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"APIError(code={self.code!r}, message={self.message!r})"


class DecodeError(VirusTotalError):
    """A payload did not have the expected shape."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.message = message
        self.path = path


class NotFound(VirusTotalError, KeyError):
    def __init__(self, name: str, kind: str = "attribute") -> None:
        super().__init__(f'{kind} "{name}" does not exist')
        self.name = name

    def __str__(self) -> str:
        # KeyError quotes its argument otherwise
        return str(self.args[0])


class WrongType(VirusTotalError, TypeError):
    def __init__(self, name: str, expected: str, kind: str = "attribute") -> None:
        super().__init__(f'{kind} "{name}" is not a {expected}')
        self.name = name
        self.expected = expected


class TypeMismatch(WrongType):
    """A dotted path went through something that is not a mapping or a list."""


class InvalidCursor(VirusTotalError, ValueError):
    pass


class ShapeAssertionError(AssertionError):
    pass
