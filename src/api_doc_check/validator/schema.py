"""JSON body shape validation.

A JsonSchema maps property names to the kind of value expected there. It
is either inferred from a documented JSON example or built from a parsed
property table. Bodies are first converted into JsonValue, a tagged union
over the JSON value space, and then checked by a recursive walk.
"""

import json
import logging
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from api_doc_check.issues import Issue, IssueCode, Severity
from api_doc_check.parser.base import NUMERIC_TYPES, ParameterDefinition, SimpleDataType

logger = logging.getLogger(__name__)

ODATA_TYPE = "@odata.type"
DEFAULT_COLLECTION_PROPERTY = "value"


class JsonKind(str, Enum):
    NULL = "Null"
    BOOLEAN = "Boolean"
    NUMBER = "Number"
    STRING = "String"
    OBJECT = "Object"
    ARRAY = "Array"
    # schema only: an object whose shape is another documented resource
    RESOURCE = "Resource"


class JsonValue(BaseModel):
    """One node of a parsed JSON document."""

    model_config = ConfigDict(frozen=True)

    kind: JsonKind
    scalar: bool | int | float | str | None = None
    members: dict[str, "JsonValue"] = {}
    items: list["JsonValue"] = []

    @classmethod
    def from_python(cls, value) -> "JsonValue":
        if value is None:
            return cls(kind=JsonKind.NULL)
        if isinstance(value, bool):
            return cls(kind=JsonKind.BOOLEAN, scalar=value)
        if isinstance(value, (int, float)):
            return cls(kind=JsonKind.NUMBER, scalar=value)
        if isinstance(value, str):
            return cls(kind=JsonKind.STRING, scalar=value)
        if isinstance(value, dict):
            return cls(kind=JsonKind.OBJECT, members={k: cls.from_python(v) for k, v in value.items()})
        if isinstance(value, list):
            return cls(kind=JsonKind.ARRAY, items=[cls.from_python(v) for v in value])
        raise TypeError(f"Unsupported JSON value type: {type(value).__name__}")

    @classmethod
    def parse(cls, json_text: str) -> "JsonValue":
        return cls.from_python(json.loads(json_text))

    @property
    def odata_type(self) -> str | None:
        found = self.members.get(ODATA_TYPE)
        if found is not None and found.kind is JsonKind.STRING:
            return found.scalar
        return None


def _normalize_type_name(name: str | None) -> str:
    return (name or "").removeprefix("#").lower()


class SchemaProperty(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    kind: JsonKind
    is_array: bool = False
    odata_type: str | None = None
    description: str = ""

    @property
    def type_description(self) -> str:
        inner = self.odata_type if self.kind is JsonKind.RESOURCE else self.kind.value
        return f"Collection({inner})" if self.is_array else str(inner)


def _infer_property(name: str, value: JsonValue) -> SchemaProperty:
    if value.kind is JsonKind.ARRAY:
        if not value.items:
            return SchemaProperty(name=name, kind=JsonKind.NULL, is_array=True)
        element = _infer_property(name, value.items[0])
        return element.model_copy(update={"is_array": True})
    if value.kind is JsonKind.OBJECT and value.odata_type:
        return SchemaProperty(name=name, kind=JsonKind.RESOURCE, odata_type=value.odata_type.removeprefix("#"))
    return SchemaProperty(name=name, kind=value.kind)


def _kind_for_definition(parameter: ParameterDefinition) -> tuple[JsonKind, str | None]:
    data_type = parameter.type
    element = data_type.element_type
    if data_type.custom_type_name and not data_type.is_enum:
        return JsonKind.RESOURCE, data_type.custom_type_name
    if element is SimpleDataType.BOOLEAN:
        return JsonKind.BOOLEAN, None
    if element in NUMERIC_TYPES:
        return JsonKind.NUMBER, None
    if element is SimpleDataType.OBJECT and not data_type.is_enum:
        return JsonKind.OBJECT, None
    return JsonKind.STRING, None


class JsonSchema(BaseModel):
    """Expected properties of one resource."""

    resource_name: str
    properties: dict[str, SchemaProperty]
    required_properties: list[str]
    optional_properties: list[str] = []
    # None means nulls are never reported
    nullable_properties: list[str] | None = None

    @classmethod
    def from_example(
        cls,
        json_text: str,
        resource_name: str,
        optional_properties: Iterable[str] = (),
        nullable_properties: Iterable[str] | None = None,
    ) -> "JsonSchema":
        """Infer a schema from a documented JSON example; every property it shows is required."""
        root = JsonValue.parse(json_text)
        if root.kind is JsonKind.ARRAY:
            root = root.items[0] if root.items else JsonValue(kind=JsonKind.OBJECT)
        if root.kind is not JsonKind.OBJECT:
            raise ValueError(f"Example for {resource_name} is not a JSON object")
        properties = {name: _infer_property(name, value) for name, value in root.members.items()}
        return cls(
            resource_name=resource_name,
            properties=properties,
            required_properties=list(properties),
            optional_properties=list(optional_properties),
            nullable_properties=None if nullable_properties is None else list(nullable_properties),
        )

    @classmethod
    def from_definitions(
        cls,
        resource_name: str,
        parameters: Iterable[ParameterDefinition],
        optional_properties: Iterable[str] = (),
        nullable_properties: Iterable[str] | None = None,
    ) -> "JsonSchema":
        """Build a schema from a property table; navigation properties are known but never required."""
        properties = {}
        required = []
        for parameter in parameters:
            kind, odata_type = _kind_for_definition(parameter)
            properties[parameter.name] = SchemaProperty(
                name=parameter.name,
                kind=kind,
                is_array=parameter.type.is_collection,
                odata_type=odata_type,
                description=parameter.description,
            )
            if not parameter.is_navigable and not parameter.optional:
                required.append(parameter.name)
        return cls(
            resource_name=resource_name,
            properties=properties,
            required_properties=required,
            optional_properties=list(optional_properties),
            nullable_properties=None if nullable_properties is None else list(nullable_properties),
        )


class SchemaRegistry:
    """Resource schemas by name, looked up case-insensitively.

    A qualified name (``microsoft.graph.user``) also resolves a schema
    registered under its short name and vice versa.
    """

    def __init__(self, schemas: Iterable[JsonSchema] = ()):
        self._schemas: dict[str, JsonSchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: JsonSchema) -> None:
        self._schemas[_normalize_type_name(schema.resource_name)] = schema

    def get(self, name: str | None) -> JsonSchema | None:
        key = _normalize_type_name(name)
        if not key:
            return None
        found = self._schemas.get(key)
        if found is not None:
            return found
        short = key.rsplit(".", 1)[-1]
        found = self._schemas.get(short)
        if found is not None:
            return found
        for registered, schema in self._schemas.items():
            if registered.rsplit(".", 1)[-1] == short:
                return schema
        return None

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._schemas)


# -- validation ---------------------------------------------------------------


def _error(code: IssueCode, message: str) -> Issue:
    return Issue(code=code, severity=Severity.ERROR, message=message)


def _warning(code: IssueCode, message: str) -> Issue:
    return Issue(code=code, severity=Severity.WARNING, message=message)


class _Walker:
    def __init__(self, registry: SchemaRegistry, ignorable_properties: Iterable[str]):
        self.registry = registry
        self.ignorable = {p.lower() for p in ignorable_properties}
        self.found: list[Issue] = []

    def validate_object(self, value: JsonValue, schema: JsonSchema, path: str = "") -> None:
        missing = list(schema.required_properties)
        for name, member in value.members.items():
            label = f"{path}.{name}" if path else name
            if name in missing:
                missing.remove(name)
            if name.lower() in self.ignorable:
                continue
            expected = schema.properties.get(name)
            if expected is None:
                # type annotation, checked by validate_resource
                if name == ODATA_TYPE:
                    continue
                self.found.append(_warning(
                    IssueCode.ADDITIONAL_PROPERTY_DETECTED,
                    f"Extra property: property '{label}' [{member.kind.value}] was not expected.",
                ))
                continue
            self.validate_property(expected, member, schema, label)

        missing = [m for m in missing if m not in schema.optional_properties]
        if missing:
            self.found.append(_error(
                IssueCode.REQUIRED_PROPERTIES_MISSING,
                f"Missing properties: response was missing these required properties: {', '.join(missing)}",
            ))

    def validate_property(self, expected: SchemaProperty, value: JsonValue, schema: JsonSchema, label: str) -> None:
        if value.kind is JsonKind.NULL:
            if schema.nullable_properties is not None and expected.name not in schema.nullable_properties:
                self.found.append(_warning(
                    IssueCode.NULL_PROPERTY_VALUE,
                    f"Non-nullable property {label} had a null value in the response. Expected {expected.type_description}.",
                ))
            return

        if expected.is_array and value.kind is not JsonKind.ARRAY:
            self.found.append(_error(IssueCode.EXPECTED_ARRAY_VALUE, f"Expected an array but property was not an array: {label}"))
            return
        if not expected.is_array and value.kind is JsonKind.ARRAY:
            self.found.append(_error(
                IssueCode.EXPECTED_NON_ARRAY_VALUE,
                f"Expected a value of type {expected.type_description} but property was an array: {label}",
            ))
            return

        if expected.is_array:
            for index, item in enumerate(value.items):
                self.validate_value(expected, item, f"{label}[{index}]")
        else:
            self.validate_value(expected, value, label)

    def validate_value(self, expected: SchemaProperty, value: JsonValue, label: str) -> None:
        if expected.kind is JsonKind.NULL or value.kind is JsonKind.NULL:
            return
        if expected.kind is JsonKind.RESOURCE:
            self.validate_resource(expected, value, label)
            return
        if expected.kind is not value.kind:
            self.found.append(_error(
                IssueCode.EXPECTED_TYPE_DIFFERENT,
                f"Expected type {expected.kind.value} but was instead {value.kind.value}: {label}",
            ))

    def validate_resource(self, expected: SchemaProperty, value: JsonValue, label: str) -> None:
        if value.kind is not JsonKind.OBJECT:
            self.found.append(_error(
                IssueCode.EXPECTED_TYPE_DIFFERENT,
                f"Type mismatch: property '{label}' [{value.kind.value}] doesn't match expected type [{expected.odata_type}].",
            ))
            return
        declared = self.registry.get(expected.odata_type)
        if declared is None:
            self.found.append(_error(
                IssueCode.RESOURCE_TYPE_NOT_FOUND,
                f"Missing resource: resource {expected.odata_type} was not found (property name '{label}').",
            ))
            return

        target = declared
        nested_type = value.odata_type
        if nested_type:
            target = self.registry.get(nested_type)
            if target is None:
                self.found.append(_error(
                    IssueCode.RESOURCE_TYPE_NOT_FOUND,
                    f"Failed to locate resource definition for: {nested_type} (property name '{label}').",
                ))
                return
            if target is not declared:
                self.found.append(_error(
                    IssueCode.EXPECTED_TYPE_DIFFERENT,
                    f"Type mismatch: property '{label}' has @odata.type {nested_type} but {expected.odata_type} was expected.",
                ))
                return
        self.validate_object(value, target, label)


def validate_body(
    json_text: str,
    schema: JsonSchema,
    is_collection: bool = False,
    registry: SchemaRegistry | None = None,
    collection_property_name: str = DEFAULT_COLLECTION_PROPERTY,
    expect_error: bool = False,
    ignorable_properties: Iterable[str] = (),
) -> list[Issue]:
    """Check the shape of a JSON body against `schema` and return every finding.

    For collection bodies only the first element of the wrapper property
    is checked.
    """
    try:
        root = JsonValue.parse(json_text)
    except (TypeError, ValueError) as e:
        return [_error(IssueCode.JSON_PARSER_EXCEPTION, f"Failed to parse json string: {e}. Json: {json_text}")]

    if registry is None:
        registry = SchemaRegistry([schema])

    if root.kind is JsonKind.OBJECT and "error" in root.members and not expect_error:
        error = root.members["error"]
        code = error.members.get("code")
        message = error.members.get("message")
        return [_error(
            IssueCode.JSON_ERROR_OBJECT,
            f"Error response received. Code: {code.scalar if code else None}, Message: {message.scalar if message else None}",
        )]

    walker = _Walker(registry, ignorable_properties)
    if is_collection:
        collection = root.members.get(collection_property_name) if root.kind is JsonKind.OBJECT else None
        if collection is None:
            return [_error(
                IssueCode.MISSING_COLLECTION_PROPERTY,
                f"Failed to locate collection property '{collection_property_name}' in response.",
            )]
        if collection.kind is not JsonKind.ARRAY:
            return [_error(IssueCode.EXPECTED_ARRAY_VALUE, f"Expected an array but property was not an array: {collection_property_name}")]
        if not collection.items:
            return [_warning(
                IssueCode.COLLECTION_ARRAY_EMPTY,
                f"Property contained an empty array that was not validated: {collection_property_name}",
            )]
        first = collection.items[0]
        if first.kind is JsonKind.OBJECT:
            walker.validate_object(first, schema)
    elif root.kind is JsonKind.OBJECT:
        walker.validate_object(root, schema)
    elif root.kind is JsonKind.ARRAY and root.items and root.items[0].kind is JsonKind.OBJECT:
        walker.validate_object(root.items[0], schema)

    logger.debug("Validated body against %s: %d finding(s)", schema.resource_name, len(walker.found))
    return walker.found
