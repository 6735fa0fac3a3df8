from __future__ import annotations

from typing import Annotated, Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, create_model

from .models import ParameterSchema, TypeSchema

# Unknown keys are rejected and values are never coerced ("30" is not an integer).
PARAMS_CONFIG = ConfigDict(extra="forbid", strict=True, protected_namespaces=())

_EXPECTED = {
    "string_type": "string",
    "int_type": "number",
    "float_type": "number",
    "bool_type": "boolean",
    "list_type": "array",
    "dict_type": "object",
}


def _annotation_for(schema: TypeSchema) -> Any:
    if schema.type == "string":
        return str
    if schema.type == "integer":
        return int
    if schema.type == "float":
        return float
    if schema.type == "boolean":
        return bool
    if schema.type == "array":
        if schema.items is None:
            raise ValueError("Array parameter is missing an items definition")
        return List[_annotation_for(schema.items)]  # type: ignore[misc]
    if schema.type == "object":
        extra = schema.additional_properties
        if isinstance(extra, TypeSchema):
            return Dict[str, _annotation_for(extra)]  # type: ignore[misc]
        if extra is False:
            return Annotated[Dict[str, Any], Field(max_length=0)]
        return Dict[str, Any]
    raise ValueError(f"Unknown parameter type: {schema.type}")


def params_to_model(params: List[ParameterSchema], model_name: str = "ToolParameters") -> Type[BaseModel]:
    """Build a strict pydantic model validating call arguments for ``params``.

    Parameters with ``required=False`` become optional and nullable; all
    others are mandatory. Unknown parameter types fail here rather than at
    validation time.

    Manifest names can be anything non-empty (``_id``, ``model_config``), so
    each field gets a positional name and carries the manifest name as its
    alias. Validate and dump by alias; see ``param_names``.
    """
    fields: Dict[str, Any] = {}
    for i, p in enumerate(params):
        ann = _annotation_for(p)
        if p.required is False:
            fields[f"p{i}"] = (Optional[ann], Field(default=None, alias=p.name, description=p.description))
        else:
            fields[f"p{i}"] = (ann, Field(..., alias=p.name, description=p.description))
    return create_model(model_name, __config__=PARAMS_CONFIG, **fields)  # type: ignore[call-overload]


def param_names(model: Type[BaseModel]) -> List[str]:
    """Parameter names of a model built by ``params_to_model``, in order."""
    return [info.alias or name for name, info in model.model_fields.items()]


def omit_fields(model: Type[BaseModel], names: Iterable[str]) -> Type[BaseModel]:
    """Derive a copy of ``model`` without the given parameters (matched by name)."""
    skip = set(names)
    fields = {
        name: (info.annotation, info)
        for name, info in model.model_fields.items()
        if (info.alias or name) not in skip
    }
    return create_model(model.__name__, __config__=PARAMS_CONFIG, **fields)  # type: ignore[call-overload]


def _json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, float):
        return "float"
    if isinstance(value, int):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _describe(err: Dict[str, Any]) -> str:
    kind = err.get("type")
    if kind == "missing":
        return "Required"
    if kind == "extra_forbidden":
        return "Unrecognized key"
    if kind in _EXPECTED:
        value = err.get("input")
        expected = _EXPECTED[kind]
        if kind == "int_type" and isinstance(value, float):
            expected = "integer"
        received = _json_type(value)
        if received == "float" and kind != "int_type":
            received = "number"
        return f"Expected {expected}, received {received}"
    return err.get("msg", "Invalid value")


def format_validation_errors(error: ValidationError) -> List[str]:
    """Render each violation as ``<dotted.path>: <reason>``."""
    lines = []
    for err in error.errors(include_url=False):
        path = ".".join(str(part) for part in err.get("loc", ())) or "payload"
        lines.append(f"{path}: {_describe(err)}")
    return lines
