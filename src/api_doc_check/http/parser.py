"""Pseudo-HTTP parser.

Turns the request/response blocks authors embed in markdown into Request
and Response values. The grammar is deliberately tolerant:

    METHOD URL [HTTP-VERSION]          HTTP-VERSION STATUS MESSAGE...
    Name: value                        Name: value

    body...                            body...

URLs may contain literal spaces (OData filter expressions), so every token
between the method and an optional trailing version marker is the URL.
"""

import logging
from enum import Enum

from api_doc_check.errors import (
    HttpParseError,
    InvalidHeaderLineError,
    MalformedFirstLineError,
    MalformedStatusLineError,
    MissingMethodOrUrlError,
)
from api_doc_check.http.models import DEFAULT_HTTP_VERSION, Request, Response
from api_doc_check.issues import IssueCode, IssueLogger

logger = logging.getLogger(__name__)

HTTP_VERSION_MARKER = "HTTP/"
HEADER_SEPARATOR = ": "


class _Mode(Enum):
    FIRST_LINE = 1
    HEADERS = 2
    BODY = 3


def parse_request(text: str) -> Request:
    """Parse a pseudo-HTTP request block."""
    if not text or not text.strip():
        raise MalformedFirstLineError("Request text was empty or whitespace only. Not a valid HTTP request.")

    method, url, version, headers, body = None, None, DEFAULT_HTTP_VERSION, [], None
    lines = _split_lines(text)
    mode = _Mode.FIRST_LINE
    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        if mode is _Mode.FIRST_LINE:
            if not line:
                continue
            method, url, version = _parse_request_line(line)
            mode = _Mode.HEADERS
        elif mode is _Mode.HEADERS:
            if not line:
                mode = _Mode.BODY
                body = "\r\n".join(lines[index + 1:])
                break
            headers.append(_parse_header(line))

    logger.debug("Parsed request %s %s (%d headers)", method, url, len(headers))
    return Request(method=method, url=url, http_version=version, headers=headers, body=body)


def parse_response(text: str) -> Response:
    """Parse a pseudo-HTTP response block."""
    if not text or not text.strip():
        raise MalformedStatusLineError("Response text was empty or whitespace only. Not a valid HTTP response.")

    version, status_code, status_message, headers, body = None, 0, "", [], ""
    lines = _split_lines(text)
    mode = _Mode.FIRST_LINE
    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        if mode is _Mode.FIRST_LINE:
            if not line:
                continue
            version, status_code, status_message = _parse_status_line(line)
            mode = _Mode.HEADERS
        elif mode is _Mode.HEADERS:
            if not line:
                body = "\r\n".join(lines[index + 1:])
                break
            headers.append(_parse_header(line))

    return Response(
        http_version=version,
        status_code=status_code,
        status_message=status_message,
        headers=headers,
        body=body,
    )


def try_parse_request(text: str, issues: IssueLogger) -> tuple[bool, Request | None]:
    """Parse a request, reporting failure on `issues` instead of raising."""
    try:
        return True, parse_request(text)
    except HttpParseError as e:
        issues.error(IssueCode.HTTP_PARSER_ERROR, f"Unable to parse HTTP request: {e}")
        return False, None


def try_parse_response(text: str, issues: IssueLogger) -> tuple[bool, Response | None]:
    """Parse a response, reporting failure on `issues` instead of raising."""
    try:
        return True, parse_response(text)
    except HttpParseError as e:
        issues.error(IssueCode.HTTP_PARSER_ERROR, f"Unable to parse HTTP response: {e}")
        return False, None


def _split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def _parse_request_line(line: str) -> tuple[str, str, str]:
    components = line.split(" ")
    if components[0].startswith(HTTP_VERSION_MARKER):
        raise MalformedFirstLineError(f"First line looks like an HTTP response, not a request: {line!r}")
    if len(components) < 2:
        raise MalformedFirstLineError(f"Request does not contain a proper HTTP request first line: {line!r}")

    method, rest = components[0], components[1:]
    version = DEFAULT_HTTP_VERSION
    # GET HTTP/1.1 https://... is seen in the wild as well as the usual order
    if len(rest) > 1 and rest[0].startswith(HTTP_VERSION_MARKER):
        version, rest = rest[0], rest[1:]
    elif len(rest) > 1 and rest[-1].startswith(HTTP_VERSION_MARKER):
        version, rest = rest[-1], rest[:-1]

    url = " ".join(rest).strip()
    if not method or not url:
        raise MissingMethodOrUrlError(f"Request first line is missing a method or URL: {line!r}")
    return method, url, version


def _parse_status_line(line: str) -> tuple[str, int, str]:
    components = line.split(" ")
    if len(components) < 3:
        raise MalformedStatusLineError(f"Response does not contain a proper HTTP status line: {line!r}")
    try:
        status_code = int(components[1])
    except ValueError as e:
        raise MalformedStatusLineError(f"Status code {components[1]!r} is not a number") from e
    return components[0], status_code, " ".join(components[2:]).strip()


def _parse_header(line: str) -> tuple[str, str]:
    split = line.find(HEADER_SEPARATOR)
    if split < 1:
        raise InvalidHeaderLineError(
            f"Invalid header definition: {line!r}. Missing blank line between the headers and body?"
        )
    return line[:split], line[split + len(HEADER_SEPARATOR):].strip()
