"""Hierarchical issue collection.

Every stage of the pipeline reports into an IssueLogger scope instead of
raising. A scope owns its own messages, warnings and errors; reading any of
those lists returns the scope's items plus every descendant's, never the
parents'. Suppressions and the error-to-warning workload policy live in one
IssuePolicy shared by reference across the whole tree.
"""

import logging
import re
import threading
from collections import Counter
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Severity(str, Enum):
    MESSAGE = "message"
    WARNING = "warning"
    ERROR = "error"


class IssueCode(str, Enum):
    """Stable identifiers for every kind of finding."""

    MESSAGE = "Message"
    SKIPPED_SIMILAR_ERRORS = "SkippedSimilarErrors"
    CONFIGURATION_ERROR = "ConfigurationError"

    # pseudo-HTTP
    HTTP_PARSER_ERROR = "HttpParserError"
    HTTP_STATUS_CODE_DIFFERENT = "HttpStatusCodeDifferent"
    HTTP_STATUS_MESSAGE_DIFFERENT = "HttpStatusMessageDifferent"
    HTTP_REQUIRED_HEADER_MISSING = "HttpRequiredHeaderMissing"
    HTTP_HEADER_VALUE_DIFFERENT = "HttpHeaderValueDifferent"

    # tables
    MARKDOWN_PARSER_ERROR = "MarkdownParserError"
    PARAMETER_PARSER_ERROR = "ParameterParserError"
    TYPE_CONVERSION_FAILURE = "TypeConversionFailure"
    UNCLASSIFIED_TABLE = "UnclassifiedTable"
    HEADING_MISSPELLED = "HeadingMisspelled"

    # placeholders
    PLACEHOLDER_NOT_FOUND = "PlaceholderNotFound"
    INVALID_PLACEHOLDER = "InvalidPlaceholder"
    REQUEST_EXECUTION_FAILED = "RequestExecutionFailed"

    # json / schema
    JSON_PARSER_EXCEPTION = "JsonParserException"
    JSON_ERROR_OBJECT = "JsonErrorObject"
    EXPECTED_TYPE_DIFFERENT = "ExpectedTypeDifferent"
    EXPECTED_ARRAY_VALUE = "ExpectedArrayValue"
    EXPECTED_NON_ARRAY_VALUE = "ExpectedNonArrayValue"
    RESOURCE_TYPE_NOT_FOUND = "ResourceTypeNotFound"
    REQUIRED_PROPERTIES_MISSING = "RequiredPropertiesMissing"
    ADDITIONAL_PROPERTY_DETECTED = "AdditionalPropertyDetected"
    MISSING_COLLECTION_PROPERTY = "MissingCollectionProperty"
    COLLECTION_ARRAY_EMPTY = "CollectionArrayEmpty"
    NULL_PROPERTY_VALUE = "NullPropertyValue"


class Issue(BaseModel):
    """A single finding recorded on a scope."""

    model_config = ConfigDict(frozen=True)

    code: IssueCode
    severity: Severity
    source: str = ""
    message: str

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    @property
    def is_warning(self) -> bool:
        return self.severity is Severity.WARNING

    @property
    def text(self) -> str:
        """Message prefixed with its source path, the form suppressions are written in."""
        if self.source:
            return f"{self.source}: {self.message}"
        return self.message

    def __str__(self) -> str:
        return f"{self.severity.value.upper()} [{self.code.value}] {self.text}"


# "  at Some.Method(args) in file" (.NET) and python tracebacks
_STACK_TRACE_PATTERNS = (
    re.compile(r"\n\s*at\s.*\).*", re.DOTALL),
    re.compile(r"\n\s*Traceback \(most recent call last\):.*", re.DOTALL),
)

# ": /abs/checkout/docs/api/some-page.md" -> trims "/abs/checkout/docs"
_KNOWN_PATH_PATTERN = re.compile(r":\s(/.*)/((api)|(resources))/.*\.md", re.DOTALL)


def normalize_issue_text(text: str | None) -> str:
    """Reduce issue text to the form suppressions are compared in."""
    if not text:
        return ""
    for pattern in _STACK_TRACE_PATTERNS:
        text = pattern.sub("", text)
    match = _KNOWN_PATH_PATTERN.search(text)
    if match:
        text = text.replace(match.group(1), "")
    return "".join(c.lower() for c in text if not c.isspace())


class IssuePolicy:
    """Suppressions and downgrade rules shared by every scope of one tree.

    Writes are rare and replace the snapshot under a lock; reads use
    whatever snapshot is current without locking.
    """

    def __init__(self, suppressions: Iterable[str] = (), error_as_warning_workloads: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._suppressions: dict[str, str] = {}
        self._workloads: tuple[str, ...] = tuple(w for w in error_as_warning_workloads if w and w.strip())
        self.add_suppressions(suppressions)

    @property
    def suppressions(self) -> list[str]:
        return list(self._suppressions.values())

    @property
    def workloads(self) -> tuple[str, ...]:
        return self._workloads

    def add_suppressions(self, texts: Iterable[str]) -> None:
        with self._lock:
            updated = dict(self._suppressions)
            for text in texts:
                key = normalize_issue_text(text)
                if key and key not in updated:
                    updated[key] = text
            self._suppressions = updated

    def set_error_as_warning_workloads(self, workloads: Iterable[str]) -> None:
        with self._lock:
            self._workloads = tuple(w for w in workloads if w and w.strip())

    def matching_suppression(self, issue: Issue) -> str | None:
        """Return the configured suppression text that hides this issue, if any."""
        snapshot = self._suppressions
        if not snapshot:
            return None
        for candidate in (issue.message, issue.text):
            found = snapshot.get(normalize_issue_text(candidate))
            if found is not None:
                return found
        return None

    def downgrades(self, source: str) -> bool:
        if not source or not source.strip():
            return False
        return any(w in source for w in self._workloads)


class IssueLogger:
    """A node in the issue scope tree."""

    def __init__(self, source: str = "", only_unique: bool = False, policy: IssuePolicy | None = None):
        self.source = source
        self.only_unique = only_unique
        self.policy = policy or IssuePolicy()
        self.issues_in_current_scope = 0
        self._children: list["IssueLogger"] = []
        self._children_lock = threading.Lock()
        self._messages: list[Issue] = []
        self._warnings: list[Issue] = []
        self._errors: list[Issue] = []
        self._downgraded: list[Issue] = []
        self._similar_issues_found = False

    # -- recording ------------------------------------------------------------

    def error(self, code: IssueCode, message: str, exception: BaseException | None = None) -> None:
        issue = Issue(code=code, severity=Severity.ERROR, source=self.source, message=_with_exception(message, exception))
        self._record(issue)

    def warning(self, code: IssueCode, message: str, exception: BaseException | None = None) -> None:
        issue = Issue(code=code, severity=Severity.WARNING, source=self.source, message=_with_exception(message, exception))
        self._record(issue)

    def message(self, text: str, code: IssueCode = IssueCode.MESSAGE) -> None:
        self._messages.append(Issue(code=code, severity=Severity.MESSAGE, source=self.source, message=text))
        self.issues_in_current_scope += 1

    def for_scope(self, name: str, only_unique: bool = False) -> "IssueLogger":
        """Create a child scope whose source is this scope's source plus `name`."""
        source = f"{self.source}/{name}" if self.source else name
        child = IssueLogger(source=source, only_unique=only_unique, policy=self.policy)
        with self._children_lock:
            self._children.append(child)
        return child

    def record_all(self, found: Iterable[Issue]) -> None:
        """Record issues produced elsewhere (e.g. by a validator) on this scope."""
        for issue in found:
            if issue.is_error:
                self.error(issue.code, issue.message)
            elif issue.is_warning:
                self.warning(issue.code, issue.message)
            else:
                self.message(issue.message, code=issue.code)

    def add_suppressions(self, texts: Iterable[str]) -> None:
        self.policy.add_suppressions(texts)

    def _record(self, issue: Issue) -> None:
        self.issues_in_current_scope += 1
        logger.debug("%s", issue)

        if issue.is_error and self.policy.downgrades(self.source):
            self._downgraded.append(issue)
            issue = Issue(
                code=issue.code,
                severity=Severity.WARNING,
                source=issue.source,
                message=f"Treating Error as Warning: {issue.message}",
            )

        bucket = self._errors if issue.is_error else self._warnings
        if self.only_unique and any(i.code == issue.code and i.message == issue.message for i in bucket):
            if not self._similar_issues_found:
                self._warnings.append(Issue(
                    code=IssueCode.SKIPPED_SIMILAR_ERRORS,
                    severity=Severity.WARNING,
                    source=self.source,
                    message="Similar errors were skipped.",
                ))
                self._similar_issues_found = True
            return
        bucket.append(issue)

    # -- reading --------------------------------------------------------------

    @property
    def children(self) -> list["IssueLogger"]:
        with self._children_lock:
            return list(self._children)

    @property
    def errors(self) -> list[Issue]:
        own = [i for i in self._errors if self.policy.matching_suppression(i) is None]
        return own + [i for c in self.children for i in c.errors]

    @property
    def warnings(self) -> list[Issue]:
        own = [i for i in self._warnings if self.policy.matching_suppression(i) is None]
        return own + [i for c in self.children for i in c.warnings]

    @property
    def messages(self) -> list[Issue]:
        return list(self._messages) + [i for c in self.children for i in c.messages]

    @property
    def issues(self) -> list[Issue]:
        return self.messages + self.warnings + self.errors

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def downgraded(self) -> list[Issue]:
        """Errors that were recorded as warnings because of the workload policy."""
        return list(self._downgraded) + [i for c in self.children for i in c.downgraded]

    @property
    def suppression_counts(self) -> Counter:
        """How many recorded issues each suppression hid, summed over the subtree."""
        counts: Counter = Counter()
        for issue in self._errors + self._warnings:
            found = self.policy.matching_suppression(issue)
            if found is not None:
                counts[found] += 1
        for child in self.children:
            counts.update(child.suppression_counts)
        return counts

    @property
    def used_suppressions(self) -> list[str]:
        return list(self.suppression_counts)

    @property
    def unused_suppressions(self) -> list[str]:
        used = self.suppression_counts
        return [s for s in self.policy.suppressions if used[s] == 0]


def _with_exception(message: str, exception: BaseException | None) -> str:
    if exception is None:
        return message
    return f"{message}\n{type(exception).__name__}: {exception}"
