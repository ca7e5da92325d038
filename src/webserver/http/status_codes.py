"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes this server can answer with, as an IntEnum so they
compare equal to plain integers:

    HTTPStatus.NOT_FOUND == 404              → True
    HTTPStatus.NOT_FOUND.phrase              → "Not Found"
    HTTPStatus.NOT_FOUND.text                → "404 Not Found"

    ┌───────┬───────────────────────────┬──────────────────────────────────┐
    │ Code  │ Phrase                    │ When                             │
    ├───────┼───────────────────────────┼──────────────────────────────────┤
    │ 200   │ OK                        │ File found and read              │
    │ 400   │ Bad Request               │ Request line is malformed        │
    │ 404   │ Not Found                 │ No such file under the root      │
    │ 500   │ Internal Server Error     │ File exists but can't be read    │
    │ 501   │ Not Implemented           │ Method other than GET            │
    └───────┴───────────────────────────┴──────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """HTTP status codes used by the server."""

    OK = 200
    BAD_REQUEST = 400
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500
    NOT_IMPLEMENTED = 501

    @property
    def phrase(self) -> str:
        """The standard reason phrase, e.g. "Not Found"."""
        return _PHRASES[self]

    @property
    def text(self) -> str:
        """Code and phrase as they appear after "HTTP/1.1 ", e.g. "404 Not Found"."""
        return f"{self.value} {self.phrase}"

    @property
    def is_success(self) -> bool:
        return 200 <= self.value < 300

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.value < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.value < 600

    @property
    def is_error(self) -> bool:
        return self.value >= 400


_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.NOT_IMPLEMENTED: "Not Implemented",
}
