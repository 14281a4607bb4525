"""Catalog data models.

These models represent the static set of orderable items and their
sub-options. A catalog is loaded once at start-up and never mutated.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CatalogOption(BaseModel):
    """Sub-option of a catalog item (e.g. a size)."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Option identifier, unique within its parent item", gt=0)
    name: str = Field(..., description="Option display name", min_length=1)
    price: Decimal = Field(..., description="Option price", ge=0)


class CatalogItem(BaseModel):
    """Catalog item model.

    An item that declares options is only orderable through one of them;
    its own price is informational.
    """

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Unique item identifier", gt=0)
    name: str = Field(..., description="Item display name", min_length=1)
    price: Decimal = Field(..., description="Base item price", ge=0)
    options: tuple[CatalogOption, ...] = Field(
        default=(), description="Ordered sub-options, empty when the item is directly orderable"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that the display name is not blank."""
        if not v.strip():
            raise ValueError("name must not be blank")
        return v

    @model_validator(mode="after")
    def validate_unique_options(self) -> "CatalogItem":
        """Validate that option ids are unique within this item."""
        ids = [option.id for option in self.options]
        if len(ids) != len(set(ids)):
            raise ValueError(f"duplicate option id in item {self.id}")
        return self

    @property
    def has_options(self) -> bool:
        return bool(self.options)
