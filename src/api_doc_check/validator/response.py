"""Compare an actual HTTP response with the documented one."""

from pydantic import BaseModel

from api_doc_check.http.models import Response
from api_doc_check.issues import Issue, IssueCode, IssueLogger, Severity

# headers whose value is checked by prefix; all other expected headers only need to be present
HEADERS_FOR_PARTIAL_MATCH = ("content-type",)


class ComparisonResult(BaseModel):
    errors: list[Issue] = []

    @property
    def ok(self) -> bool:
        return not self.errors

    def report(self, issues: IssueLogger) -> None:
        issues.record_all(self.errors)


def _issue(code: IssueCode, message: str, severity: Severity = Severity.ERROR) -> Issue:
    return Issue(code=code, severity=severity, message=message)


def compare_responses(
    expected: Response,
    actual: Response,
    allowed_status_codes: list[int] | None = None,
) -> ComparisonResult:
    """Check status code, status message and expected headers, collecting every mismatch.

    A status code listed in `allowed_status_codes` is reported as a warning.
    The status message is only compared when the codes agree; a different
    code already explains a different message. Bodies are not compared here.
    """
    errors = []

    if expected.status_code != actual.status_code:
        if allowed_status_codes and actual.status_code in allowed_status_codes:
            errors.append(_issue(
                IssueCode.HTTP_STATUS_CODE_DIFFERENT,
                "Response uses an allowed status code that was different than the documentation indicates: "
                f"Expected status code: {expected.status_code}, received: {actual.status_code}.",
                Severity.WARNING,
            ))
        else:
            errors.append(_issue(
                IssueCode.HTTP_STATUS_CODE_DIFFERENT,
                f"Expected status code: {expected.status_code}, received: {actual.status_code}.",
            ))
    elif expected.status_message != actual.status_message:
        errors.append(_issue(
            IssueCode.HTTP_STATUS_MESSAGE_DIFFERENT,
            f"Expected status message {expected.status_message}, received: {actual.status_message}.",
        ))

    for name, expected_value in expected.headers:
        actual_value = actual.header(name)
        if actual_value is None:
            errors.append(_issue(
                IssueCode.HTTP_REQUIRED_HEADER_MISSING,
                f"Response is missing header expected header: {name}.",
            ))
        elif name.lower() in HEADERS_FOR_PARTIAL_MATCH:
            if not actual_value.lower().startswith(expected_value.lower()):
                errors.append(_issue(
                    IssueCode.HTTP_HEADER_VALUE_DIFFERENT,
                    f"Header '{name}' has unexpected value '{actual_value}' (expected {expected_value})",
                ))

    return ComparisonResult(errors=errors)
