from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing import Any, Dict, List, Optional
from datetime import datetime
from decimal import Decimal
from urllib.parse import urlparse

DESCRIPTION_MAX_LENGTH = 500

# products.price is Numeric(10, 2)
PRICE_STEP = Decimal("0.01")
PRICE_MAX = Decimal("99999999.99")

_TRUE_STRINGS = {"true", "1", "yes", "y", "on"}
_FALSE_STRINGS = {"false", "0", "no", "n", "off"}


def normalize_category(category: str) -> str:
    return category.strip().upper()


def coerce_bool(value) -> bool:
    """Interpret form/query values such as "true"/"false" as booleans."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"Cannot interpret {value!r} as a boolean")


def is_valid_url(value: str) -> bool:
    if not value or any(ch.isspace() for ch in value):
        return False
    try:
        parts = urlparse(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def parse_keywords(raw: Optional[str]) -> List[str]:
    """Comma-separated text -> unique, trimmed, non-empty keywords (first occurrence wins)."""
    if not raw:
        return []
    keywords: List[str] = []
    seen = set()
    for part in raw.split(","):
        keyword = part.strip()
        if keyword and keyword not in seen:
            keywords.append(keyword)
            seen.add(keyword)
    return keywords


def parse_banner_images(raw: Optional[str]) -> List[str]:
    """Newline-separated text -> ordered, trimmed, non-empty URLs."""
    if not raw:
        return []
    return [line.strip() for line in raw.splitlines() if line.strip()]


def field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    """Flatten a ValidationError into {field: [messages]}."""
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
        if err.get("type") == "value_error" and err.get("ctx", {}).get("error") is not None:
            message = str(err["ctx"]["error"])
        else:
            message = err.get("msg", "Invalid value")
        errors.setdefault(field, []).append(message)
    return errors


class ProductForm(BaseModel):
    """Create/edit form for a product. Unknown keys (id, created_at, ...) are ignored."""

    model_config = ConfigDict(validate_default=True)

    name: str = ""
    description: Optional[str] = None
    image: str = ""
    category: str = ""
    price: Decimal = Decimal("0")
    is_active: bool = True

    @field_validator("name")
    @classmethod
    def _require_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Name is required.")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("description")
    @classmethod
    def _limit_description(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > DESCRIPTION_MAX_LENGTH:
            raise ValueError(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters.")
        return value

    @field_validator("image")
    @classmethod
    def _validate_image(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Image URL is required.")
        if not is_valid_url(value):
            raise ValueError("Invalid image URL.")
        return value

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        normalized = normalize_category(value)
        if not normalized:
            raise ValueError("Category is required.")
        return normalized

    @field_validator("price", mode="before")
    @classmethod
    def _blank_price_to_zero(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return Decimal("0")
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("price")
    @classmethod
    def _check_price(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("Price cannot be negative.")
        if value > PRICE_MAX:
            raise ValueError(f"Price cannot exceed {PRICE_MAX}.")
        if value != value.quantize(PRICE_STEP):
            raise ValueError("Price cannot have more than 2 decimal places.")
        return value

    @field_validator("is_active", mode="before")
    @classmethod
    def _coerce_is_active(cls, value):
        if value is None:
            return True
        return coerce_bool(value)


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    image: str
    category: str
    price: Decimal
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProductListResponse(BaseModel):
    items: list[ProductResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class SettingsForm(BaseModel):
    model_config = ConfigDict(validate_default=True)

    site_name: str = ""
    default_seo_title: str = ""
    default_seo_description: str = ""
    seo_keywords: Optional[str] = None
    banner_images: Optional[str] = None

    @field_validator("site_name", "default_seo_title", "default_seo_description")
    @classmethod
    def _required_text(cls, value: str, info) -> str:
        value = value.strip()
        if not value:
            label = info.field_name.replace("_", " ").capitalize()
            raise ValueError(f"{label} is required.")
        return value


class SiteSettingsResponse(BaseModel):
    id: int
    site_name: str
    default_seo_title: str
    default_seo_description: str
    seo_keywords: List[str] = Field(default_factory=list)
    banner_images: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BulkIdsRequest(BaseModel):
    ids: List[str] = Field(default_factory=list)


class BulkToggleRequest(BulkIdsRequest):
    # Coerced by the action so bad values get the usual error shape.
    is_active: Any = None


class ToggleRequest(BaseModel):
    field: str
    value: Any = None
