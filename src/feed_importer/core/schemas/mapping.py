"""Schemas produced by the field mapper: resolved records and target field listings."""

from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, Field

MappedValue = Union[str, list[str]]


class ResolvedRecord(BaseModel):
    """The result of applying a feed's mapping rules to one item.

    Attributes:
        native_values: Built-in record fields keyed by native target key.
        featured_image_url: Image URL mapped to the ``featured_image``
            sentinel, if any.
        custom_values: Values for schema-declared custom fields.
        taxonomy_terms: Term names per taxonomy.  Later rules replace
            earlier ones for the same taxonomy.
        meta_values: Free-form tags keyed by operator-chosen name.
    """

    native_values: dict[str, MappedValue] = Field(default_factory=dict)
    featured_image_url: Optional[str] = None
    custom_values: dict[str, MappedValue] = Field(default_factory=dict)
    taxonomy_terms: dict[str, list[str]] = Field(default_factory=dict)
    meta_values: dict[str, MappedValue] = Field(default_factory=dict)


class FieldDescriptor(BaseModel):
    """A selectable mapping target."""

    key: str
    label: str
    type: str = "text"


class TargetFields(BaseModel):
    """Targets available for one collection.

    Attributes:
        native_fields: Built-in fields, always present.
        custom_fields: Schema-declared custom fields of the collection.
        taxonomy_like_fields: Taxonomies attached to the collection.
        custom_fields_available: ``False`` when the collection is unknown to
            schema discovery.
    """

    native_fields: list[FieldDescriptor] = Field(default_factory=list)
    custom_fields: list[FieldDescriptor] = Field(default_factory=list)
    taxonomy_like_fields: list[FieldDescriptor] = Field(default_factory=list)
    custom_fields_available: bool = False
