"""Strict parameter schemas and argument validation for tool calls.

Schemas come in two shapes:

- simplified: ``{"city": "string", "days": {"type": "integer", "minimum": 1}}``
  where every field is required unless marked ``"optional": true`` (or
  ``"required": false``);
- expanded (OpenAPI-like): ``{"type": "object", "properties": {...},
  "required": [...]}`` where the ``required`` list is authoritative.

Both are normalized into an ``ObjectSchema`` tree, which is then compiled
into a pydantic model with ``extra="forbid"`` at every level. Argument data
is checked with ``model_validate`` and the pydantic errors are reported as
one message per problem, all of them rather than the first.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    create_model,
)

from taskchain_agent.errors import SchemaError

SchemaType = Literal["string", "number", "integer", "boolean", "array", "object"]


class StrictModel(BaseModel):
    """Base model for strict schema definitions."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class PropertySchema(StrictModel):
    type: SchemaType
    description: str | None = None
    enum: list[Any] | None = None
    default: Any = None
    format: str | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    min_length: int | None = Field(default=None, alias="minLength", ge=0)
    max_length: int | None = Field(default=None, alias="maxLength", ge=0)
    items: PropertySchema | None = None
    properties: dict[str, PropertySchema] | None = None
    required: list[str] = Field(default_factory=list)


class ArgumentsModel(BaseModel):
    """Base for the argument models compiled from parameter schemas."""

    model_config = ConfigDict(extra="forbid")


class ObjectSchema(StrictModel):
    type: Literal["object"] = "object"
    properties: dict[str, PropertySchema] = Field(default_factory=dict)
    required: list[str] = Field(default_factory=list)
    description: str | None = None

    _arguments_model: type[ArgumentsModel] | None = PrivateAttr(default=None)

    def arguments_model(self) -> type[ArgumentsModel]:
        if self._arguments_model is None:
            self._arguments_model = _compile_model(self.properties, self.required)
        return self._arguments_model


PropertySchema.model_rebuild()


@dataclass(frozen=True)
class ValidationSuccess:
    sanitized: dict[str, Any]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ValidationFailure:
    errors: list[str]

    @property
    def ok(self) -> bool:
        return False


ValidationResult = ValidationSuccess | ValidationFailure


def normalize_schema(schema: ObjectSchema | Mapping[str, Any]) -> ObjectSchema:
    """Convert a simplified or expanded schema mapping into an ``ObjectSchema``.

    The arguments model is compiled here too, so a schema pydantic cannot
    express fails when the tool is created rather than on its first call.
    """
    if isinstance(schema, ObjectSchema):
        schema.arguments_model()
        return schema
    if not isinstance(schema, Mapping):
        raise SchemaError(f"Parameter schema must be a mapping, got {type(schema).__name__}")

    if _is_expanded_object(schema):
        explicit_required = schema.get("required")
        properties, required = _normalize_properties(
            schema["properties"],
            explicit_required=list(explicit_required or []),
            path="",
        )
        payload: dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "required": required,
            "description": schema.get("description"),
        }
    else:
        properties, required = _normalize_properties(schema, explicit_required=None, path="")
        payload = {"type": "object", "properties": properties, "required": required}

    try:
        object_schema = ObjectSchema.model_validate(payload)
    except ValidationError as exc:
        raise SchemaError(f"Invalid parameter schema: {exc}") from exc
    object_schema.arguments_model()
    return object_schema


def validate(data: Any, schema: ObjectSchema | Mapping[str, Any]) -> ValidationResult:
    """Validate ``data`` against ``schema``; returns all errors found."""
    object_schema = normalize_schema(schema)
    try:
        arguments = object_schema.arguments_model().model_validate(data)
    except ValidationError as exc:
        return ValidationFailure(_error_messages(exc, object_schema))
    return ValidationSuccess(arguments.model_dump(by_alias=True, exclude_unset=True))


def _is_expanded_object(raw: Mapping[str, Any]) -> bool:
    return raw.get("type") == "object" and isinstance(raw.get("properties"), Mapping)


def _normalize_properties(
    raw_properties: Mapping[str, Any],
    *,
    explicit_required: list[str] | None,
    path: str,
) -> tuple[dict[str, dict[str, Any]], list[str]]:
    properties: dict[str, dict[str, Any]] = {}
    required: list[str] = []
    for name, raw in raw_properties.items():
        field_path = _join(path, str(name))
        prop, flag = _normalize_property(raw, field_path)
        properties[str(name)] = prop
        if explicit_required is None:
            is_required = flag is not False
        else:
            is_required = name in explicit_required or flag is True
        if is_required:
            required.append(str(name))

    unknown = [name for name in explicit_required or [] if name not in properties]
    if unknown:
        raise SchemaError(
            f"Required fields not declared in properties at '{path or '<root>'}': "
            + ", ".join(unknown)
        )
    return properties, required


def _normalize_property(raw: Any, path: str) -> tuple[dict[str, Any], bool | None]:
    if isinstance(raw, str):
        return {"type": raw}, None
    if not isinstance(raw, Mapping) or "type" not in raw:
        raise SchemaError(
            f"Property '{path}' must be a type name or an object with a 'type' key"
        )

    prop = dict(raw)
    flag: bool | None = None
    required_value = prop.pop("required", None)
    nested_required: list[str] | None = None
    if isinstance(required_value, bool):
        flag = required_value
    elif required_value is not None:
        nested_required = list(required_value)
    if prop.pop("optional", False) is True:
        flag = False

    nested = prop.get("properties")
    if nested is not None:
        if not isinstance(nested, Mapping):
            raise SchemaError(f"Property '{path}' has non-object 'properties'")
        nested_properties, nested_required_names = _normalize_properties(
            nested,
            explicit_required=nested_required or [],
            path=path,
        )
        prop["properties"] = nested_properties
        prop["required"] = nested_required_names

    items = prop.get("items")
    if items is not None:
        prop["items"], _ = _normalize_property(items, f"{path}[]")

    return prop, flag


def _compile_model(
    properties: Mapping[str, PropertySchema],
    required: list[str],
    *,
    path: str = "",
) -> type[ArgumentsModel]:
    # Field names are positional so property names never clash with BaseModel attributes.
    name = "NestedArguments" if path else "Arguments"
    fields: dict[str, Any] = {}
    for index, (prop_name, prop) in enumerate(properties.items()):
        annotation = _annotation_for(prop, _join(path, prop_name))
        if prop_name in required:
            fields[f"field_{index}"] = (annotation, Field(alias=prop_name))
        else:
            fields[f"field_{index}"] = (Optional[annotation], Field(default=None, alias=prop_name))
    return create_model(name, __base__=ArgumentsModel, **fields)


def _annotation_for(prop: PropertySchema, path: str) -> Any:
    if prop.enum is not None:
        return _enum_annotation(prop.enum, path)
    if prop.type == "string":
        return Annotated[StrictStr, Field(min_length=prop.min_length, max_length=prop.max_length)]
    if prop.type == "number":
        return Annotated[StrictInt | StrictFloat, Field(ge=prop.minimum, le=prop.maximum)]
    if prop.type == "integer":
        integral_float = Annotated[StrictFloat, Field(multiple_of=1)]
        return Annotated[StrictInt | integral_float, Field(ge=prop.minimum, le=prop.maximum)]
    if prop.type == "boolean":
        return StrictBool
    if prop.type == "array":
        if prop.items is None:
            return list[Any]
        return list[_annotation_for(prop.items, f"{path}[]")]
    if prop.properties is None:
        return dict[str, Any]
    return _compile_model(prop.properties, prop.required, path=path)


def _enum_annotation(options: list[Any], path: str) -> Any:
    if not options:
        raise SchemaError(f"Property '{path}' has an empty enum")
    try:
        return Literal[tuple(options)]
    except TypeError as exc:
        raise SchemaError(f"Property '{path}' has unhashable enum values") from exc


def _error_messages(exc: ValidationError, schema: ObjectSchema) -> list[str]:
    messages: list[str] = []
    for error in exc.errors():
        message = _describe_error(error, schema)
        if message not in messages:
            messages.append(message)
    return messages


def _describe_error(error: Mapping[str, Any], schema: ObjectSchema) -> str:
    path, prop = _resolve_location(error["loc"], schema)
    kind = error["type"]
    value = error.get("input")
    if not path:
        return f"Arguments must be an object, got {_json_type(value)}"
    if kind == "extra_forbidden":
        return f"Unexpected field: {path}"
    if kind == "missing" or value is None:
        return f"Missing required field: {path}"
    if prop is None:
        return f"Field '{path}' is invalid: {error['msg']}"

    if kind == "literal_error":
        options = ", ".join(str(option) for option in prop.enum or [])
        return f"Field '{path}' must be one of: {options}"
    if kind == "too_short":
        return f"Field '{path}' must be at least {prop.min_length} characters"
    if kind == "too_long":
        return f"Field '{path}' must be at most {prop.max_length} characters"
    if kind == "greater_than_equal":
        return f"Field '{path}' must be at least {prop.minimum}"
    if kind == "less_than_equal":
        return f"Field '{path}' must be at most {prop.maximum}"

    # Everything else is a type mismatch, including each failed branch of a number union.
    article = "an" if prop.type[0] in "aeiou" else "a"
    return f"Field '{path}' must be {article} {prop.type}, got {_json_type(value)}"


def _resolve_location(
    loc: tuple[int | str, ...],
    schema: ObjectSchema,
) -> tuple[str, PropertySchema | None]:
    """Walk a pydantic error location through the schema tree.

    Stops at the first segment the schema does not describe, which drops the
    union branch tags pydantic appends below number fields.
    """
    path = ""
    properties: Mapping[str, PropertySchema] | None = schema.properties
    prop: PropertySchema | None = None
    for part in loc:
        if isinstance(part, int) and prop is not None and prop.type == "array":
            path = f"{path}[{part}]"
            prop = prop.items
        elif isinstance(part, str) and properties is not None:
            path = _join(path, part)
            prop = properties.get(part)
        else:
            break
        if prop is None:
            break
        properties = prop.properties if prop.type == "object" else None
    return path, prop


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name
