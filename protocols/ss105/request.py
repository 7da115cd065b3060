"""Sampling protocol request base class.

Requests are short ASCII command codes; arguments are appended as
fixed-width hex fields. A request is either a GET or a SET, and the
protocol mode decides whether a checksum follows the command.
"""

from abc import ABC, abstractmethod
from typing import Any

from common.encoding import hex_field


class Request(ABC):
    """A sampling protocol request.

    Subclasses format the command and parse the response payload; they are
    immutable once built so a request can be re-sent as is.
    """

    is_set: bool = False

    def has_checksum(self) -> bool:
        """Check if the request (and its response) carry a checksum."""
        return True

    @abstractmethod
    def format_get_request(self) -> str | None:
        """Format a basic "GET" request."""

    def format_set_request(self) -> str | None:
        """Format a basic "SET" request."""
        return None

    def format(self) -> str:
        req = self.format_set_request() if self.is_set else self.format_get_request()
        if req is None:
            kind = "SET" if self.is_set else "GET"
            raise ValueError(f"{type(self).__name__} has no {kind} form")
        return req

    @abstractmethod
    def parse(self, payload: str) -> Any:
        """Parse the response payload (checksum already removed).

        Raises FramingError or ProtocolLogicError.
        """

    @staticmethod
    def hex(value: int, width: int) -> str:
        return hex_field(value, width)
