from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

ParameterType = Literal["string", "integer", "float", "boolean", "array", "object"]


class TypeSchema(BaseModel):
    """Pure type definition of a value, without a parameter name."""

    model_config = ConfigDict(populate_by_name=True)

    type: ParameterType
    items: Optional[TypeSchema] = None
    additional_properties: Union[bool, TypeSchema, None] = Field(
        default=None, alias="additionalProperties"
    )

    @model_validator(mode="after")
    def _array_needs_items(self):
        if self.type == "array" and self.items is None:
            raise ValueError("items: Required for array parameters")
        return self


class ParameterSchema(TypeSchema):
    """A named tool parameter as declared in the manifest.

    Array ``items`` stay a plain ``TypeSchema``: servers may send them bare
    (``{"type": "string"}``) or named; names on items are ignored.
    """

    name: str = Field(min_length=1)
    description: str
    required: bool = True
    auth_sources: Optional[List[str]] = Field(default=None, alias="authSources")


class ToolSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(min_length=1)
    parameters: List[ParameterSchema]
    auth_required: List[str] = Field(default_factory=list, alias="authRequired")


class ManifestSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    server_version: str = Field(min_length=1, alias="serverVersion")
    tools: Dict[Annotated[str, Field(min_length=1)], ToolSchema]
