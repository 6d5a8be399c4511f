"""Placeholder resolution and request rewriting.

A placeholder is a ``key: value`` pair supplied for a documented request.
The key's shape says where the value goes:

- ``{name}`` or ``!url``: the URL (``!url`` replaces it entirely)
- ``Name:``: an HTTP header
- ``!body`` / ``!body-base64``: the whole request body
- ``$.path``: a field inside a JSON body
- ``[name]``: a stored value; only valid as a value, never as a key

Values are literal unless they are a stored-value reference, an ``=``
expression, or contain a ``!random-filename[.ext]!`` marker.
"""

import base64
import binascii
import logging
import uuid
from enum import Enum
from typing import Mapping

from pydantic import BaseModel, ConfigDict

from api_doc_check.errors import (
    ConflictingBodyPlaceholdersError,
    InvalidPlaceholderKeyError,
    JsonPathError,
    PlaceholderValueNotFoundError,
)
from api_doc_check.http.models import MIME_TYPE_JSON, Request, Response, replace_header
from api_doc_check.params.evaluator import ExpressionEvaluator, default_evaluator
from api_doc_check.params.jsonpath import set_value_for_json_path, value_from_json_path

logger = logging.getLogger(__name__)

BODY_KEY = "!body"
BODY_BASE64_KEY = "!body-base64"
URL_KEY = "!url"
EXPRESSION_PREFIX = "="
RANDOM_FILENAME_MARKER = "!random-filename"
RANDOM_FILENAME_PREFIX = "apidoc-"


class PlaceholderLocation(str, Enum):
    INVALID = "Invalid"
    URL = "Url"
    JSON = "Json"
    HTTP_HEADER = "HttpHeader"
    BODY = "Body"
    BODY_BASE64_ENCODED = "BodyBase64Encoded"
    STORED_VALUE = "StoredValue"
    EXPRESSION = "Expression"


class PlaceholderValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    defined_value: str | None
    location: PlaceholderLocation
    value: str | None


def location_for_key(key: str | None) -> PlaceholderLocation:
    """Infer where a placeholder key (or value) points from its shape alone."""
    if key is None:
        return PlaceholderLocation.INVALID
    if key.startswith("{") and key.endswith("}") and len(key) > 2:
        return PlaceholderLocation.URL
    if key.startswith("[") and key.endswith("]") and len(key) > 2:
        return PlaceholderLocation.STORED_VALUE
    if key == BODY_KEY:
        return PlaceholderLocation.BODY
    if key == BODY_BASE64_KEY:
        return PlaceholderLocation.BODY_BASE64_ENCODED
    if key == URL_KEY:
        return PlaceholderLocation.URL
    if key.startswith(EXPRESSION_PREFIX) and len(key) > 1:
        return PlaceholderLocation.EXPRESSION
    if key.endswith(":") and len(key) > 1:
        return PlaceholderLocation.HTTP_HEADER
    if key.startswith("$"):
        return PlaceholderLocation.JSON
    return PlaceholderLocation.INVALID


def resolve_placeholder(
    key: str,
    raw_value: str | None,
    stored_values: Mapping[str, str],
    evaluator: ExpressionEvaluator = default_evaluator,
) -> PlaceholderValue:
    """Resolve one ``key: raw_value`` pair into a PlaceholderValue.

    Raises InvalidPlaceholderKeyError for keys that point nowhere, and
    PlaceholderValueNotFoundError when a ``[name]`` value has no stored entry.
    """
    location = location_for_key(key)
    if location in (PlaceholderLocation.INVALID, PlaceholderLocation.STORED_VALUE, PlaceholderLocation.EXPRESSION):
        raise InvalidPlaceholderKeyError(f"Placeholder key '{key}' is invalid. KeyType was {location.value}")

    value = raw_value
    value_location = location_for_key(raw_value)
    if value_location is PlaceholderLocation.STORED_VALUE:
        if raw_value not in stored_values:
            raise PlaceholderValueNotFoundError(f"Unable to locate the placeholder value {raw_value} in available values.")
        value = stored_values[raw_value]
    elif value_location is PlaceholderLocation.EXPRESSION:
        value = evaluator(raw_value[len(EXPRESSION_PREFIX):], stored_values)

    if value is not None and RANDOM_FILENAME_MARKER in value:
        value = replace_random_filename(value)

    logger.debug("Converting %r: %r into location=%s value=%r", key, raw_value, location.value, value)
    return PlaceholderValue(key=key, defined_value=raw_value, location=location, value=value)


def replace_random_filename(value: str) -> str:
    """Swap a ``!random-filename[.ext]!`` marker for a unique file name keeping the extension."""
    start = value.index(RANDOM_FILENAME_MARKER)
    end = value.find("!", start + 1)
    marker = value[start:end + 1] if end > -1 else value[start:]
    extension = marker[len(RANDOM_FILENAME_MARKER):].strip("!")
    filename = f"{RANDOM_FILENAME_PREFIX}{uuid.uuid4()}"
    if extension:
        filename = f"{filename}{extension if extension.startswith('.') else '.' + extension}"
    return value.replace(marker, filename, 1)


def to_placeholder_values(
    parameters: Mapping[str, str | None] | None,
    stored_values: Mapping[str, str],
    evaluator: ExpressionEvaluator = default_evaluator,
) -> list[PlaceholderValue]:
    if not parameters:
        return []
    return [resolve_placeholder(k, v, stored_values, evaluator) for k, v in parameters.items()]


# -- rewriting ----------------------------------------------------------------


def rewrite_url(url: str, placeholders: list[PlaceholderValue]) -> str:
    for p in placeholders:
        if p.key == URL_KEY:
            url = p.value or ""
        else:
            url = url.replace(p.key, p.value or "")
    return url


def rewrite_json_body(body: str | None, placeholders: list[PlaceholderValue]) -> str | None:
    if not body:
        return body
    for p in placeholders:
        body = set_value_for_json_path(body, p.key, p.value)
    return body


def rewrite_request(template: Request, placeholders: list[PlaceholderValue]) -> Request:
    """Apply placeholders in order: URL, headers, body, then JSON fields.

    Returns a new Request; the template is left untouched.
    """
    by_location: dict[PlaceholderLocation, list[PlaceholderValue]] = {}
    for p in placeholders:
        by_location.setdefault(p.location, []).append(p)

    update = {"url": rewrite_url(template.url, by_location.get(PlaceholderLocation.URL, []))}

    headers = list(template.headers)
    for p in by_location.get(PlaceholderLocation.HTTP_HEADER, []):
        headers = replace_header(headers, p.key[:-1], p.value)
    update["headers"] = headers

    body_params = by_location.get(PlaceholderLocation.BODY, []) + by_location.get(PlaceholderLocation.BODY_BASE64_ENCODED, [])
    if len(body_params) > 1:
        raise ConflictingBodyPlaceholdersError(
            f"Only one body placeholder may be supplied, found: {', '.join(p.key for p in body_params)}"
        )
    body, body_bytes = template.body, template.body_bytes
    if body_params:
        param = body_params[0]
        if param.location is PlaceholderLocation.BODY_BASE64_ENCODED:
            try:
                body, body_bytes = None, base64.b64decode(param.value or "", validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidPlaceholderKeyError(f"Value for {param.key} is not valid base64: {e}") from e
        else:
            body, body_bytes = param.value, None

    json_params = by_location.get(PlaceholderLocation.JSON, [])
    rewritten = template.model_copy(update={**update, "body": body, "body_bytes": body_bytes})
    if json_params and rewritten.is_matching_content_type(MIME_TYPE_JSON):
        rewritten = rewritten.model_copy(update={"body": rewrite_json_body(rewritten.body, json_params)})
    return rewritten


def value_for_keyed_identifier(response: Response, key: str) -> str | None:
    """Read the value a response offers for a capture key (``!body``, ``Name:`` or ``$.path``)."""
    location = location_for_key(key)
    if location is PlaceholderLocation.BODY:
        return response.body
    if location is PlaceholderLocation.HTTP_HEADER:
        return response.header(key[:-1])
    if location is PlaceholderLocation.JSON:
        if not response.is_matching_content_type(MIME_TYPE_JSON):
            raise JsonPathError(f"Cannot read JSON path property from response with content-type: {response.content_type}")
        value = value_from_json_path(response.body, key)
        return None if value is None else _json_scalar_text(value)
    raise InvalidPlaceholderKeyError(f"Unsupported location for keyed identifier {key}: {location.value}")


def _json_scalar_text(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
