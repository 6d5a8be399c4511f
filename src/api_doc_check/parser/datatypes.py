"""Interpret the free-text cells of documentation tables.

Type cells are written by hand ("Edm.String", "Collection(driveItem)",
"[identitySet](identityset.md)", "String collection"), so parsing is a
set of tolerant heuristics. Required-ness is inferred from the description
column and can be swapped for another strategy.
"""

import re
from typing import Callable

from api_doc_check.issues import IssueCode, IssueLogger
from api_doc_check.parser.base import ParameterDataType, SimpleDataType

_SIMPLE_TYPES = {
    "string": SimpleDataType.STRING,
    "int64": SimpleDataType.INT64,
    "long": SimpleDataType.INT64,
    "number": SimpleDataType.INT64,
    "integer": SimpleDataType.INT64,
    "int": SimpleDataType.INT32,
    "int32": SimpleDataType.INT32,
    "int16": SimpleDataType.INT16,
    "short": SimpleDataType.INT16,
    "single": SimpleDataType.SINGLE,
    "double": SimpleDataType.DOUBLE,
    "float": SimpleDataType.FLOAT,
    "guid": SimpleDataType.GUID,
    "bool": SimpleDataType.BOOLEAN,
    "boolean": SimpleDataType.BOOLEAN,
    "datetime": SimpleDataType.DATE_TIME_OFFSET,
    "datetimeoffset": SimpleDataType.DATE_TIME_OFFSET,
    "timestamp": SimpleDataType.DATE_TIME_OFFSET,
    "timeofday": SimpleDataType.TIME_OF_DAY,
    "date": SimpleDataType.DATE,
    "duration": SimpleDataType.DURATION,
    "etag": SimpleDataType.STRING,
    "range": SimpleDataType.STRING,
    "url": SimpleDataType.STRING,
    "stream": SimpleDataType.STREAM,
    "binary": SimpleDataType.BINARY,
    "byte": SimpleDataType.BYTE,
}

_COLLECTION_PREFIXES = ("collection(", "collection of")
_COLLECTION_SUFFIX = " collection"
_MARKDOWN_LINK = re.compile(r"\[([^\]]*)\](\([^)]*\))?")


def parse_simple_type(value: str) -> SimpleDataType | None:
    """Map a primitive type spelling to a SimpleDataType, or None."""
    lowered = value.strip().lower().removeprefix("edm.")
    found = _SIMPLE_TYPES.get(lowered)
    if found is None and "timestamp" in lowered:
        return SimpleDataType.DATE_TIME_OFFSET
    return found


def parse_parameter_data_type(
    value: str | None,
    is_collection: bool = False,
    issues: IssueLogger | None = None,
    default: ParameterDataType | None = None,
    default_namespace: str | None = None,
) -> ParameterDataType | None:
    """Convert the text of a type cell into a ParameterDataType."""
    if value is None:
        return default
    value = value.strip()
    if not value:
        return default

    lowered = value.lower()
    for prefix in _COLLECTION_PREFIXES:
        if lowered.startswith(prefix):
            is_collection = True
            value = value[len(prefix):].rstrip(")").strip()
            break
    else:
        if lowered.endswith(_COLLECTION_SUFFIX):
            is_collection = True
            value = value[: -len(_COLLECTION_SUFFIX)].strip()

    link = _MARKDOWN_LINK.search(value)
    if link:
        value = link.group(1).strip()

    simple = parse_simple_type(value)
    if simple is not None:
        return ParameterDataType.simple(simple, is_collection)

    lowered = value.lower()
    inferred = None
    if "etag" in lowered:
        inferred = SimpleDataType.STRING
    elif "timestamp" in lowered:
        inferred = SimpleDataType.DATE_TIME_OFFSET
    elif "string" in lowered:
        inferred = SimpleDataType.STRING
    if inferred is not None:
        return ParameterDataType.simple(inferred, is_collection)

    is_enum = False
    if lowered.endswith(" enum"):
        is_enum = True
        value = value[: -len(" enum")].strip()

    if value and " " not in value and "/" not in value:
        return ParameterDataType.custom(_qualify(value, default_namespace), is_collection, is_enum)

    if default is not None:
        return default

    if issues is not None:
        issues.warning(
            IssueCode.TYPE_CONVERSION_FAILURE,
            f"Couldn't convert '{value}' into an understood data type. Assuming String type.",
        )
    return ParameterDataType.simple(SimpleDataType.STRING, is_collection)


def _qualify(type_name: str, default_namespace: str | None) -> str:
    namespace, _, short_name = type_name.rpartition(".")
    short_name = short_name[:1].lower() + short_name[1:]
    if namespace:
        return f"{namespace}.{short_name}"
    if default_namespace:
        return f"{default_namespace}.{short_name}"
    return short_name


# -- required / optional heuristics -------------------------------------------

RequiredStrategy = Callable[[str | None], bool]

_REQUIRED_WORD = re.compile(r"\brequired\b", re.IGNORECASE)
_NEGATED_REQUIRED = re.compile(r"\b(not|isn't|never)\s+required\b", re.IGNORECASE)
_OPTIONAL_WORD = re.compile(r"\boptional\b", re.IGNORECASE)


def infer_required(description: str | None) -> bool:
    """True when the description says the value is required and doesn't negate it."""
    if not description:
        return False
    if _NEGATED_REQUIRED.search(description) or _OPTIONAL_WORD.search(description):
        return False
    return bool(_REQUIRED_WORD.search(description))


def infer_optional(description: str | None) -> bool:
    return bool(description) and description.strip().lower().startswith("optional")


def parse_boolean(value: str | None) -> bool:
    """Parse true/false/yes/no; empty is False; anything else raises ValueError."""
    if value is None or not value.strip():
        return False
    lowered = value.strip().lower()
    if lowered in ("true", "yes"):
        return True
    if lowered in ("false", "no"):
        return False
    raise ValueError(f"Couldn't convert this value to a boolean: {value}")


def parse_int(value: str | None) -> int | None:
    """Parse an integer cell; empty is None; anything else non-numeric raises ValueError."""
    if value is None or not value.strip():
        return None
    return int(value.strip(), 0) if value.strip().lower().startswith("0x") else int(value.strip())
