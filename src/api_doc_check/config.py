"""Configuration: table decoders/rules and validation settings.

Both documents are YAML. The table configuration is validated eagerly;
a decoder that points at a missing rule, or a rule missing a column mapping
its table kind needs, fails before any page is read.
"""

import logging
import os
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from api_doc_check.errors import ConfigurationError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_TABLE_CONFIG = DATA_DIR / "tables.yaml"


class TableKind(str, Enum):
    UNKNOWN = "Unknown"
    RESOURCE_PROPERTY_DESCRIPTIONS = "ResourcePropertyDescriptions"
    RESOURCE_NAVIGATION_PROPERTY_DESCRIPTIONS = "ResourceNavigationPropertyDescriptions"
    REQUEST_OBJECT_PROPERTIES = "RequestObjectProperties"
    RESPONSE_OBJECT_PROPERTIES = "ResponseObjectProperties"
    ENUMERATION_VALUES = "EnumerationValues"
    ERROR_CODES = "ErrorCodes"
    QUERY_STRING_PARAMETERS = "QueryStringParameters"
    HTTP_HEADERS = "HttpHeaders"
    PATH_PARAMETERS = "PathParameters"
    AUTH_SCOPES = "AuthScopes"


PARAMETER_TABLE_KINDS = frozenset({
    TableKind.RESOURCE_PROPERTY_DESCRIPTIONS,
    TableKind.RESOURCE_NAVIGATION_PROPERTY_DESCRIPTIONS,
    TableKind.REQUEST_OBJECT_PROPERTIES,
    TableKind.RESPONSE_OBJECT_PROPERTIES,
    TableKind.QUERY_STRING_PARAMETERS,
    TableKind.HTTP_HEADERS,
    TableKind.PATH_PARAMETERS,
})

# logical fields each family of tables reads; a rule must map all of them
REQUIRED_FIELDS: dict[TableKind, tuple[str, ...]] = {
    **{kind: ("name", "type", "description") for kind in PARAMETER_TABLE_KINDS},
    TableKind.ERROR_CODES: ("httpStatusCode", "httpStatusMessage", "errorCode", "description"),
    TableKind.ENUMERATION_VALUES: ("memberName", "description"),
    TableKind.AUTH_SCOPES: ("scope", "title", "description", "required"),
}

WILDCARD = "{x}"


class TableRule(BaseModel):
    """Column spellings accepted for each logical field of one kind of table."""

    model_config = ConfigDict(frozen=True)

    type: str
    columns: dict[str, list[str]]

    def column_names(self, field: str) -> list[str]:
        try:
            return self.columns[field]
        except KeyError:
            raise ConfigurationError(f"Table rule '{self.type}' does not map the logical field '{field}'") from None


class TableDecoder(BaseModel):
    """Maps heading titles to a table kind and the rule used to read it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: TableKind
    titles: list[str] = []
    parse_as: str = Field(alias="parseAs")


class TableParserConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tables: list[TableDecoder]
    parsing_rules: list[TableRule] = Field(alias="parsingRules")

    @model_validator(mode="after")
    def _rules_resolve(self) -> "TableParserConfig":
        rules = {r.type: r for r in self.parsing_rules}
        for decoder in self.tables:
            rule = rules.get(decoder.parse_as)
            if rule is None:
                raise ValueError(f"Table decoder '{decoder.type.value}' uses undefined parse rule '{decoder.parse_as}'")
            missing = [f for f in REQUIRED_FIELDS.get(decoder.type, ()) if f not in rule.columns]
            if missing:
                raise ValueError(
                    f"Parse rule '{rule.type}' used by '{decoder.type.value}' does not map: {', '.join(missing)}"
                )
        return self

    def rule_for(self, decoder: TableDecoder) -> TableRule:
        for rule in self.parsing_rules:
            if rule.type == decoder.parse_as:
                return rule
        raise ConfigurationError(f"Undefined parse rule '{decoder.parse_as}'")

    @property
    def all_titles(self) -> list[str]:
        return [t for d in self.tables for t in d.titles]


def load_table_config(path: Path | None = None) -> TableParserConfig:
    """Load and validate a table parser configuration (the packaged default when `path` is None)."""
    path = path or DEFAULT_TABLE_CONFIG
    data = read_yaml(path)
    if isinstance(data, dict) and "tableDefinitions" in data:
        data = data["tableDefinitions"]
    try:
        config = TableParserConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid table configuration in {path}: {e}") from e
    logger.debug("Loaded %d table decoders from %s", len(config.tables), path)
    return config


# -- validation settings ------------------------------------------------------


class TransformationMap(BaseModel):
    properties: dict[str, str] | None = None


class Transformations(BaseModel):
    request: TransformationMap | None = None
    response: TransformationMap | None = None


class ServiceAccount(BaseModel):
    """Where and as whom documented requests are executed."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = "default"
    base_url: str = Field("", alias="baseUrl")
    access_token: str | None = Field(None, alias="accessToken")
    headers: dict[str, str] = {}
    transformations: Transformations | None = None

    def auth_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        if self.access_token:
            headers.setdefault("Authorization", f"Bearer {self.access_token}")
        return headers


class ValidationConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    suppressions: list[str] = []
    treat_errors_as_warnings_workloads: list[str] = Field([], alias="treatErrorsAsWarningsWorkloads")
    ignorable_properties: list[str] = Field([], alias="ignorableProperties")
    collection_property_name: str = Field("value", alias="collectionPropertyName")
    allowed_status_codes: list[int] = Field([], alias="allowedStatusCodes")
    concurrency: int = Field(4, ge=1)
    timeout: float = Field(30.0, gt=0)
    account: ServiceAccount | None = None


# (path of alias keys inside the YAML document, environment variable)
ENV_OVERRIDES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("account", "baseUrl"), "APIDOC_BASE_URL"),
    (("account", "accessToken"), "APIDOC_ACCESS_TOKEN"),
    (("concurrency",), "APIDOC_CONCURRENCY"),
    (("timeout",), "APIDOC_TIMEOUT"),
)


def apply_env_overrides(data: dict, environ=None) -> dict:
    """Return a copy of `data` with every set ENV_OVERRIDES variable written into place."""
    environ = os.environ if environ is None else environ
    data = dict(data)
    for path, env_key in ENV_OVERRIDES:
        value = environ.get(env_key)
        if not value:
            continue
        target = data
        for key in path[:-1]:
            target[key] = dict(target.get(key) or {})
            target = target[key]
        target[path[-1]] = value
    return data


def load_validation_config(path: Path | None = None, environ=None) -> ValidationConfig:
    data = read_yaml(path) if path else {}
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Validation configuration {path} must be a mapping")
    try:
        return ValidationConfig.model_validate(apply_env_overrides(data, environ))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid validation configuration: {e}") from e


def read_yaml(path: Path):
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Unable to read configuration file {path}: {e}") from e
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Configuration file {path} is not valid YAML: {e}") from e
