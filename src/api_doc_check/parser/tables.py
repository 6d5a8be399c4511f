"""Table classification and parsing.

A documentation table is classified by the heading above it (first
configured title contained in the heading wins), then by its shape through
a pluggable hook, and finally falls back to Unknown. Each kind is read
with the decoder's rule, which lists the accepted spellings of every
logical column.
"""

import logging
from typing import Callable

from pydantic import BaseModel

from api_doc_check.config import (
    PARAMETER_TABLE_KINDS,
    WILDCARD,
    TableDecoder,
    TableKind,
    TableParserConfig,
    TableRule,
    load_table_config,
)
from api_doc_check.issues import IssueCode, IssueLogger
from api_doc_check.parser.base import (
    STRING_TYPE,
    AnyDefinition,
    AuthScopeDefinition,
    EnumerationDefinition,
    ErrorDefinition,
    ParameterDefinition,
    ParameterLocation,
)
from api_doc_check.parser.datatypes import (
    RequiredStrategy,
    infer_optional,
    infer_required,
    parse_boolean,
    parse_int,
    parse_parameter_data_type,
)
from api_doc_check.parser.markdown import MarkdownTable, strip_markdown

logger = logging.getLogger(__name__)

# headings closer than this to a configured title are reported as misspellings
MISSPELLING_DISTANCE = 3

_LOCATIONS = {
    TableKind.PATH_PARAMETERS: ParameterLocation.PATH,
    TableKind.QUERY_STRING_PARAMETERS: ParameterLocation.QUERY,
    TableKind.HTTP_HEADERS: ParameterLocation.HEADER,
    TableKind.REQUEST_OBJECT_PROPERTIES: ParameterLocation.JSON_OBJECT,
    TableKind.RESPONSE_OBJECT_PROPERTIES: ParameterLocation.JSON_OBJECT,
    TableKind.RESOURCE_PROPERTY_DESCRIPTIONS: ParameterLocation.JSON_OBJECT,
    TableKind.RESOURCE_NAVIGATION_PROPERTY_DESCRIPTIONS: ParameterLocation.JSON_OBJECT,
}

_BLANK_CELLS = ("", "&nbsp;")


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two strings."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb)))
        previous = current
    return previous[-1]


class DecoderMatch(BaseModel):
    """A decoder chosen for a table, plus what a wildcard title captured."""

    decoder: TableDecoder
    rule: TableRule
    stamp: str | None = None
    is_flags: bool = False

    @property
    def kind(self) -> TableKind:
        return self.decoder.type


class TableDefinition(BaseModel):
    kind: TableKind
    items: list[AnyDefinition]
    heading: str | None = None


ShapeClassifier = Callable[[MarkdownTable], TableDecoder | None]


def no_shape_match(table: MarkdownTable) -> TableDecoder | None:
    """Default shape classifier: column sets alone never decide a table's kind."""
    return None


class TableSpecConverter:
    """Converts markdown tables into typed definitions using a decoder configuration."""

    def __init__(
        self,
        config: TableParserConfig,
        shape_classifier: ShapeClassifier = no_shape_match,
        required_strategy: RequiredStrategy = infer_required,
        similarity: Callable[[str, str], int] = edit_distance,
        default_namespace: str | None = None,
    ):
        self.config = config
        self.shape_classifier = shape_classifier
        self.required_strategy = required_strategy
        self.similarity = similarity
        self.default_namespace = default_namespace

    @classmethod
    def from_default_configuration(cls, **kwargs) -> "TableSpecConverter":
        return cls(load_table_config(), **kwargs)

    # -- classification -------------------------------------------------------

    def classify(self, heading: str | None, table: MarkdownTable) -> TableKind:
        match = self.match_decoder(heading, table)
        return match.kind if match else TableKind.UNKNOWN

    def match_decoder(self, heading: str | None, table: MarkdownTable) -> DecoderMatch | None:
        if heading:
            match = self._match_heading(heading)
            if match is not None:
                return match
        decoder = self.shape_classifier(table)
        if decoder is not None and decoder.type is not TableKind.UNKNOWN:
            return DecoderMatch(decoder=decoder, rule=self.config.rule_for(decoder))
        return None

    def _match_heading(self, heading: str) -> DecoderMatch | None:
        lowered = heading.lower()
        for decoder in self.config.tables:
            for title in decoder.titles:
                if WILDCARD in title:
                    key = title.replace(WILDCARD, "").strip().lower()
                    index = lowered.find(key)
                    preceding = heading[:index].split() if index > 0 else []
                    if preceding:
                        word = preceding[-1]
                        return DecoderMatch(
                            decoder=decoder,
                            rule=self.config.rule_for(decoder),
                            stamp=word[:1].lower() + word[1:],
                            is_flags="flags" in lowered,
                        )
                elif title.lower() in lowered:
                    return DecoderMatch(decoder=decoder, rule=self.config.rule_for(decoder))
        return None

    def _report_misspelling(self, heading: str, issues: IssueLogger) -> None:
        lowered = heading.lower()
        for title in self.config.all_titles:
            if WILDCARD in title:
                continue
            if self.similarity(lowered, title.lower()) < MISSPELLING_DISTANCE:
                issues.warning(
                    IssueCode.HEADING_MISSPELLED,
                    f"Heading '{heading}' looks like a misspelling of the table title '{title}'",
                )
                return

    # -- parsing --------------------------------------------------------------

    def parse_table_spec(self, table: MarkdownTable, heading: str | None, issues: IssueLogger) -> TableDefinition:
        """Classify a table and convert its rows into definitions."""
        match = self.match_decoder(heading, table)
        if match is None:
            headers = ",".join(table.column_headers) if table.column_headers else "null"
            issues.message(
                f"Ignored unclassified table: headerText='{heading}', tableHeaders='{headers}'",
                code=IssueCode.UNCLASSIFIED_TABLE,
            )
            if heading:
                self._report_misspelling(heading, issues)
            return TableDefinition(kind=TableKind.UNKNOWN, items=[], heading=heading)

        logger.debug("Table under %r classified as %s", heading, match.kind.value)
        items = self.parse_table(table, match, issues)
        return TableDefinition(kind=match.kind, items=items, heading=heading)

    def parse_table(self, table: MarkdownTable, match: DecoderMatch, issues: IssueLogger) -> list[AnyDefinition]:
        kind = match.kind
        if kind is TableKind.ERROR_CODES:
            return self._parse_error_table(table, match.rule)
        if kind in PARAMETER_TABLE_KINDS:
            navigation = kind is TableKind.RESOURCE_NAVIGATION_PROPERTY_DESCRIPTIONS
            scope = issues.for_scope(f"{kind.value}Table")
            return self._parse_parameter_table(table, _LOCATIONS[kind], match.rule, scope, navigation)
        if kind is TableKind.ENUMERATION_VALUES:
            return self._parse_enumeration_table(table, match, issues)
        if kind is TableKind.AUTH_SCOPES:
            return self._parse_auth_scope_table(table, match.rule, issues)
        return []

    def _parse_error_table(self, table: MarkdownTable, rule: TableRule) -> list[ErrorDefinition]:
        return [
            ErrorDefinition(
                name=value_for_column(row, table, rule.column_names("errorCode")),
                http_status_code=value_for_column(row, table, rule.column_names("httpStatusCode")),
                http_status_message=value_for_column(row, table, rule.column_names("httpStatusMessage")),
                description=value_for_column(row, table, rule.column_names("description")),
            )
            for row in table.rows
        ]

    def _parse_parameter_table(
        self,
        table: MarkdownTable,
        location: ParameterLocation,
        rule: TableRule,
        issues: IssueLogger,
        navigation: bool = False,
    ) -> list[ParameterDefinition]:
        # | **section title** | &nbsp; | &nbsp; |  rows split a table into sections
        rows = [r for r in table.rows if not _is_section_divider(r)]
        records = []
        for row in rows:
            description = value_for_column(row, table, rule.column_names("description"))
            records.append(ParameterDefinition(
                name=value_for_column(row, table, rule.column_names("name")),
                type=parse_parameter_data_type(
                    value_for_column(row, table, rule.column_names("type")),
                    issues=issues,
                    default_namespace=self.default_namespace,
                ) or STRING_TYPE,
                description=description,
                required=self.required_strategy(description),
                optional=infer_optional(description),
                location=location,
                is_navigable=navigation,
            ))

        return _drop_nameless(records, table, issues)

    def _parse_enumeration_table(self, table: MarkdownTable, match: DecoderMatch, issues: IssueLogger) -> list[EnumerationDefinition]:
        rule = match.rule
        records = []
        for row in table.rows:
            used: list[str] = []
            name = value_for_column(row, table, rule.column_names("memberName"), used)
            numeric_text = value_for_column(row, table, rule.columns.get("numericValue", []), used)
            try:
                numeric_value = parse_int(numeric_text)
            except ValueError:
                issues.warning(IssueCode.TYPE_CONVERSION_FAILURE, f"Couldn't convert '{numeric_text}' to an integer for enum member '{name}'")
                numeric_value = None
            records.append(EnumerationDefinition(
                name=name,
                numeric_value=numeric_value,
                description=value_for_column(row, table, rule.column_names("description"), used),
                type_name=match.stamp,
                is_flags=match.is_flags,
            ))
        return records

    def _parse_auth_scope_table(self, table: MarkdownTable, rule: TableRule, issues: IssueLogger) -> list[AuthScopeDefinition]:
        records = []
        for row in table.rows:
            scope = value_for_column(row, table, rule.column_names("scope"))
            required_text = value_for_column(row, table, rule.column_names("required"))
            try:
                required = parse_boolean(required_text)
            except ValueError as e:
                issues.warning(IssueCode.TYPE_CONVERSION_FAILURE, f"Scope '{scope}': {e}")
                required = False
            records.append(AuthScopeDefinition(
                name=scope,
                title=value_for_column(row, table, rule.column_names("title")),
                description=value_for_column(row, table, rule.column_names("description")),
                required=required,
            ))
        return _drop_nameless(records, table, issues)


def _drop_nameless(records: list, table: MarkdownTable, issues: IssueLogger) -> list:
    """Remove rows that produced no name, warning about them."""
    bad_rows = sum(1 for r in records if not r.name)
    if not bad_rows:
        return records
    headers = f"|{'|'.join(table.column_headers)}|"
    if bad_rows == len(records):
        issues.warning(IssueCode.MARKDOWN_PARSER_ERROR, f"Failed to parse any rows out of table with headers: {headers}")
        return []
    issues.warning(IssueCode.PARAMETER_PARSER_ERROR, f"Failed to parse {bad_rows} row(s) in table with headers: {headers}")
    return [r for r in records if r.name]


def value_for_column(
    row: list[str],
    table: MarkdownTable,
    possible_header_names: list[str],
    used_columns: list[str] | None = None,
) -> str:
    """Cell text of the first column whose header matches one of `possible_header_names`.

    Header comparison is case-insensitive. Names already in `used_columns`
    are skipped so two logical fields never read the same column.
    """
    used_columns = used_columns if used_columns is not None else []
    headers = [h.lower() for h in table.column_headers]
    taken = {headers.index(u.lower()) for u in used_columns if u.lower() in headers}
    for name in possible_header_names:
        if name.lower() not in headers:
            continue
        index = headers.index(name.lower())
        if index in taken:
            continue
        if index < len(row):
            used_columns.append(name)
            return strip_markdown(row[index])
    return ""


def _is_section_divider(row: list[str]) -> bool:
    return bool(row) and row[0].startswith("**") and all(c.strip() in _BLANK_CELLS for c in row[1:])
