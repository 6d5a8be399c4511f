"""Exception hierarchy for api-doc-check.

Only conditions that make a single unit of work meaningless are raised.
Validation findings are recorded on an IssueLogger instead.
"""


class ApiDocCheckError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ApiDocCheckError):
    """The tool itself is misconfigured; fatal at startup."""


# -- pseudo-HTTP parsing ------------------------------------------------------


class HttpParseError(ApiDocCheckError):
    """A pseudo-HTTP block could not be parsed."""


class MalformedFirstLineError(HttpParseError):
    pass


class MissingMethodOrUrlError(HttpParseError):
    pass


class InvalidHeaderLineError(HttpParseError):
    pass


class MalformedStatusLineError(HttpParseError):
    pass


# -- placeholders -------------------------------------------------------------


class PlaceholderError(ApiDocCheckError):
    """A request template could not be turned into a concrete request."""


class PlaceholderValueNotFoundError(PlaceholderError):
    pass


class InvalidPlaceholderKeyError(PlaceholderError):
    pass


class ExpressionEvaluationError(PlaceholderError):
    pass


class ConflictingBodyPlaceholdersError(PlaceholderError):
    pass


class JsonPathError(ApiDocCheckError):
    """A JSON path was malformed or could not be followed."""
