"""Namespace translation between documented and implemented property names.

An account may declare ``transformations.request.properties`` and
``transformations.response.properties`` maps. Every JSON property name
containing a map key has that key replaced by the mapped value; the same
replacement is applied to ``@odata.type`` values.
"""

import json
import logging
import re
from typing import Mapping

from api_doc_check.config import ServiceAccount
from api_doc_check.http.models import MIME_TYPE_JSON, Request, Response, content_type_matches

logger = logging.getLogger(__name__)

ODATA_TYPE = "@odata.type"
_BOUNDARY = re.compile(r'boundary="?([^";]+)"?', re.IGNORECASE)


def _translate(text: str, mapping: Mapping[str, str]) -> str:
    for source, target in mapping.items():
        if source in text:
            return text.replace(source, target)
    return text


def _apply(node, mapping: Mapping[str, str]):
    if isinstance(node, list):
        return [_apply(item, mapping) for item in node]
    if isinstance(node, dict):
        result = {}
        for key, value in node.items():
            if key == ODATA_TYPE and isinstance(value, str):
                result[key] = _translate(value, mapping)
            else:
                result[_translate(key, mapping)] = _apply(value, mapping)
        return result
    return node


def rewrite_json_properties(json_text: str | None, mapping: Mapping[str, str]) -> str | None:
    """Rename properties throughout a JSON document; blank input is returned as is."""
    if not json_text or not json_text.strip() or not mapping:
        return json_text
    return json.dumps(_apply(json.loads(json_text), mapping))


# -- multipart ----------------------------------------------------------------


def _split_part(part: str) -> tuple[str, str]:
    """Split a MIME part into its header block and body."""
    for separator in ("\r\n\r\n", "\n\n"):
        head, found, body = part.partition(separator)
        if found:
            return head + separator, body
    return part, ""


def _part_content_type(head: str) -> str | None:
    for line in head.splitlines():
        name, _, value = line.partition(":")
        if name.strip().lower() == "content-type":
            return value.strip()
    return None


def rewrite_multipart_body(body: str, content_type: str, mapping: Mapping[str, str]) -> str:
    """Translate each application/json part of a multipart body independently."""
    match = _BOUNDARY.search(content_type or "")
    if match is None or not body:
        return body
    delimiter = f"--{match.group(1)}"
    segments = body.split(delimiter)
    # segments[0] is the preamble, and the last one starts with "--" (the closing delimiter)
    for index in range(1, len(segments)):
        segment = segments[index]
        if segment.startswith("--"):
            continue
        head, part_body = _split_part(segment)
        if not content_type_matches(_part_content_type(head), MIME_TYPE_JSON):
            continue
        stripped = part_body.rstrip("\r\n")
        trailing = part_body[len(stripped):]
        segments[index] = head + rewrite_json_properties(stripped, mapping) + trailing
    return delimiter.join(segments)


def rewrite_request_body_namespaces(request: Request, account: ServiceAccount | None) -> Request:
    mapping = _mapping(account, "request")
    if not mapping or not request.body:
        return request
    if request.is_matching_content_type(MIME_TYPE_JSON):
        body = rewrite_json_properties(request.body, mapping)
    elif (request.content_type or "").lower().startswith("multipart/"):
        body = rewrite_multipart_body(request.body, request.content_type, mapping)
    else:
        return request
    logger.debug("Translated request body namespaces for %s %s", request.method, request.url)
    return request.model_copy(update={"body": body})


def rewrite_response_body_namespaces(response: Response, account: ServiceAccount | None) -> Response:
    mapping = _mapping(account, "response")
    if not mapping or not response.body or not response.is_matching_content_type(MIME_TYPE_JSON):
        return response
    return response.model_copy(update={"body": rewrite_json_properties(response.body, mapping)})


def _mapping(account: ServiceAccount | None, direction: str) -> dict[str, str] | None:
    if account is None or account.transformations is None:
        return None
    transformation = getattr(account.transformations, direction)
    if transformation is None:
        return None
    return transformation.properties
