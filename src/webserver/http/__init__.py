"""
HTTP protocol layer: request-line parsing, status codes, response bytes.
"""

from .request import HTTPRequest, RequestParser, parse_request
from .response import (
    HTTPResponse,
    build_response,
    make_response,
    html_error_page,
    ok,
    bad_request,
    not_found,
    internal_error,
    not_implemented,
)
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "parse_request",
    "HTTPResponse",
    "build_response",
    "make_response",
    "html_error_page",
    "ok",
    "bad_request",
    "not_found",
    "internal_error",
    "not_implemented",
    "HTTPStatus",
]
