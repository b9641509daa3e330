from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Schema(BaseModel):
    type: str = ""
    format: str = ""
    title: str = ""
    description: str = ""
    default: Any = None
    enum: list[Any] | None = None
    const: Any = None
    required: list[str] = Field(default_factory=list)
    properties: dict[str, "Schema"] | None = None
    items: "Schema | None" = None
    one_of: list["Schema"] | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    exclusive_maximum: bool = False
    min_length: int | None = None
    max_length: int | None = None
    pattern: str = ""
    nullable: bool = False
    extensions: dict[str, Any] | None = None


Schema.model_rebuild()  # necessary for recursive types


class Form(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    method: str = ""
    endpoint: str = ""
    summary: str = ""
    description: str = ""
    schema_: Schema = Field(default_factory=Schema, alias="schema")
    responses: dict[str, Schema] | None = None
    extensions: dict[str, Any] | None = None


class FormRef(BaseModel):
    id: str
    title: str = ""
    summary: str = ""
    description: str = ""


class NormalizeOptions(BaseModel):
    content_type_slug: str = ""
    default_form_suffix: str = ""
    form_id: str = ""


class SchemaIR(BaseModel):
    forms: dict[str, Form] = Field(default_factory=dict)

    def form(self, form_id: str) -> Form | None:
        return self.forms.get(form_id)

    def form_refs(self) -> list[FormRef]:
        """Return one ref per form, ordered by form id."""
        refs: list[FormRef] = []
        for key in sorted(self.forms):
            form = self.forms[key]
            refs.append(
                FormRef(
                    id=form.id.strip() or key,
                    title=form.summary.strip(),
                    summary=form.summary,
                    description=form.description,
                )
            )
        return refs
