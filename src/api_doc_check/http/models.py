"""Request and response values shared by the parser, resolver and validator."""

from pydantic import BaseModel, ConfigDict, model_validator

DEFAULT_HTTP_VERSION = "HTTP/1.1"

MIME_TYPE_JSON = "application/json"


def content_type_matches(content_type: str | None, expected: str) -> bool:
    """Compare only the media type, ignoring parameters like charset or boundary."""
    if not content_type:
        return False
    media_type = content_type.split(";", 1)[0].strip()
    return media_type.lower() == expected.lower()


class _HttpMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    http_version: str = DEFAULT_HTTP_VERSION
    headers: list[tuple[str, str]] = []  # ordered multimap, names compared case-insensitively

    def header(self, name: str) -> str | None:
        """First value for `name`, or None."""
        for key, value in self.headers:
            if key.lower() == name.lower():
                return value
        return None

    def header_values(self, name: str) -> list[str]:
        return [value for key, value in self.headers if key.lower() == name.lower()]

    def has_header(self, name: str) -> bool:
        return any(key.lower() == name.lower() for key, _ in self.headers)

    @property
    def content_type(self) -> str | None:
        return self.header("Content-Type")

    def is_matching_content_type(self, expected: str) -> bool:
        return content_type_matches(self.content_type, expected)


def replace_header(headers: list[tuple[str, str]], name: str, value: str | None) -> list[tuple[str, str]]:
    """Return a copy of `headers` with every `name` entry replaced by one, or removed when value is None."""
    kept = [(k, v) for k, v in headers if k.lower() != name.lower()]
    if value is None:
        return kept
    for index, (key, _) in enumerate(headers):
        if key.lower() == name.lower():
            kept.insert(min(index, len(kept)), (key, value))
            return kept
    kept.append((name, value))
    return kept


class Request(_HttpMessage):
    """A parsed pseudo-HTTP request.

    `body` and `body_bytes` are mutually exclusive; a base64 body placeholder
    produces raw bytes, everything else stays text.
    """

    method: str
    url: str
    body: str | None = None
    body_bytes: bytes | None = None

    @model_validator(mode="after")
    def _single_body(self) -> "Request":
        if self.body is not None and self.body_bytes is not None:
            raise ValueError("Request cannot carry both a text body and a binary body")
        return self


class Response(_HttpMessage):
    """An expected (parsed) or actual (executed) HTTP response."""

    status_code: int
    status_message: str = ""
    body: str = ""
    elapsed: float = 0.0  # seconds
    retry_count: int = 0

    @property
    def successful(self) -> bool:
        return 200 <= self.status_code < 300

    def full_text(self) -> str:
        lines = [f"{self.http_version} {self.status_code} {self.status_message}".rstrip()]
        lines.extend(f"{k}: {v}" for k, v in self.headers)
        lines.append("")
        return "\r\n".join(lines) + "\r\n" + (self.body or "")
