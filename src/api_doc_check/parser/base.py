"""Typed definitions extracted from documentation tables.

Every table parser converts its rows into these models; the response
validator and the schema builder consume them.
"""

from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    JSON_OBJECT = "json"


class SimpleDataType(str, Enum):
    STRING = "String"
    INT64 = "Int64"
    INT32 = "Int32"
    INT16 = "Int16"
    SINGLE = "Single"
    DOUBLE = "Double"
    FLOAT = "Float"
    GUID = "Guid"
    BOOLEAN = "Boolean"
    DATE_TIME_OFFSET = "DateTimeOffset"
    TIME_OF_DAY = "TimeOfDay"
    DATE = "Date"
    DURATION = "Duration"
    STREAM = "Stream"
    BINARY = "Binary"
    BYTE = "Byte"
    OBJECT = "Object"
    COLLECTION = "Collection"


NUMERIC_TYPES = frozenset({
    SimpleDataType.INT64,
    SimpleDataType.INT32,
    SimpleDataType.INT16,
    SimpleDataType.SINGLE,
    SimpleDataType.DOUBLE,
    SimpleDataType.FLOAT,
    SimpleDataType.BYTE,
})


class ParameterDataType(BaseModel):
    """Semantic type of a documented property: a primitive, a named type, or a collection of either."""

    model_config = ConfigDict(frozen=True)

    type: SimpleDataType
    collection_type: SimpleDataType | None = None
    custom_type_name: str | None = None
    is_enum: bool = False

    @classmethod
    def simple(cls, simple_type: SimpleDataType, is_collection: bool = False) -> "ParameterDataType":
        if is_collection:
            return cls(type=SimpleDataType.COLLECTION, collection_type=simple_type)
        return cls(type=simple_type)

    @classmethod
    def custom(cls, type_name: str, is_collection: bool = False, is_enum: bool = False) -> "ParameterDataType":
        type_name = type_name.removeprefix("#")
        if is_collection:
            return cls(
                type=SimpleDataType.COLLECTION,
                collection_type=SimpleDataType.OBJECT,
                custom_type_name=type_name,
                is_enum=is_enum,
            )
        return cls(type=SimpleDataType.OBJECT, custom_type_name=type_name, is_enum=is_enum)

    @property
    def is_collection(self) -> bool:
        return self.type is SimpleDataType.COLLECTION

    @property
    def is_object(self) -> bool:
        return self.type is SimpleDataType.OBJECT

    @property
    def element_type(self) -> SimpleDataType:
        """The type of a single value: the item type for collections, otherwise the type itself."""
        if self.is_collection:
            return self.collection_type or SimpleDataType.OBJECT
        return self.type

    def __str__(self) -> str:
        inner = self.custom_type_name or self.element_type.value
        return f"Collection({inner})" if self.is_collection else inner


STRING_TYPE = ParameterDataType.simple(SimpleDataType.STRING)


class Definition(BaseModel):
    """Fields shared by every kind of table row."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    description: str = ""


class ParameterDefinition(Definition):
    type: ParameterDataType = STRING_TYPE
    location: ParameterLocation = ParameterLocation.JSON_OBJECT
    required: bool = False
    optional: bool = False
    is_navigable: bool = False  # OData navigation property


class ErrorDefinition(Definition):
    """A documented error; `name` is the service error code."""

    http_status_code: str = ""
    http_status_message: str = ""


class EnumerationDefinition(Definition):
    """A documented enum member; `name` is the member name."""

    numeric_value: int | None = None
    type_name: str | None = None
    is_flags: bool = False


class AuthScopeDefinition(Definition):
    """A documented permission scope; `name` is the scope."""

    title: str = ""
    required: bool = False


AnyDefinition = Union[ParameterDefinition, ErrorDefinition, EnumerationDefinition, AuthScopeDefinition]
