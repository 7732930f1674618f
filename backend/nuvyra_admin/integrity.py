"""
AI-assisted data integrity check for the product table.

The model is asked to fill in missing names/images/categories and to
normalize categories. Its answer is only trusted after it passes the
``CorrectionOutput`` schema; applying the corrections goes through the regular
``update_product`` action so the usual validation still runs.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nuvyra_admin import crud
from nuvyra_admin.actions import PRODUCTS_PATH, ActionResult, update_product
from nuvyra_admin.database import settings
from nuvyra_admin.models import Product
from nuvyra_admin.schemas import field_errors, normalize_category

LOGGER = logging.getLogger(__name__)

DEFAULT_NAME = "Unknown Product"
DEFAULT_IMAGE = "https://placehold.co/300x300.png"
DEFAULT_CATEGORY = "UNCATEGORIZED"

DISABLED_MESSAGE = "AI data integrity check is currently disabled."

SYSTEM_PROMPT = f"""You are an expert in data quality and consistency. You are provided with an array of product \
data objects. Your task is to identify and correct any inconsistencies in the data, such as null or empty values \
for name, image, or category. Also, standardize the category field by trimming whitespace and converting to uppercase.

Return the corrected product data as an array of objects, ensuring that:
- All products have a non-null and non-empty name. If name is missing, use "{DEFAULT_NAME}".
- All products have a non-null and non-empty image URL. If image is missing, use "{DEFAULT_IMAGE}".
- All products have a non-null and non-empty category, trimmed and in uppercase. If category is missing, use \
"{DEFAULT_CATEGORY}".
- 'is_active' is a boolean; default to true if null or missing.
- 'created_at' is an ISO 8601 timestamp string or null. Preserve valid timestamps. If 'created_at' is invalid or \
unparsable as an ISO 8601 timestamp, set it to null. Do not generate new timestamps for 'created_at'.
- Keep every product's 'id' unchanged and return one object per input product.

Also, provide a summary of the corrections you made in 'corrections_summary'."""

_CORRECTED_PRODUCT_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "description": {"type": ["string", "null"]},
        "image": {"type": "string"},
        "category": {"type": "string"},
        "is_active": {"type": "boolean"},
        "created_at": {"type": ["string", "null"]},
    },
    "required": ["id", "name", "description", "image", "category", "is_active", "created_at"],
    "additionalProperties": False,
}

RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "product_data_corrections",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "corrected_products": {"type": "array", "items": _CORRECTED_PRODUCT_SCHEMA},
                "corrections_summary": {"type": "string"},
            },
            "required": ["corrected_products", "corrections_summary"],
            "additionalProperties": False,
        },
    },
}


class IntegrityCheckError(Exception):
    """The completion service failed or returned something we cannot use."""


def _parse_iso_timestamp(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise ValueError("created_at must be an ISO 8601 timestamp or null") from exc
    return value


class ProductRecord(BaseModel):
    """A stored product as sent to the model."""

    id: str
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    category: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductRecord":
        created_at = product.created_at.isoformat() if product.created_at else None
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            image=product.image,
            category=product.category,
            is_active=bool(product.is_active) if product.is_active is not None else True,
            created_at=created_at,
        )


class CorrectedProduct(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    image: str
    category: str
    is_active: bool = True
    created_at: Optional[str] = None

    @field_validator("name", "image")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @field_validator("category")
    @classmethod
    def _normalized_category(cls, value: str) -> str:
        if not value.strip() or value != normalize_category(value):
            raise ValueError("must be non-empty, trimmed and uppercase")
        return value

    @field_validator("created_at")
    @classmethod
    def _valid_created_at(cls, value: Optional[str]) -> Optional[str]:
        return _parse_iso_timestamp(value)


class CorrectionOutput(BaseModel):
    corrected_products: List[CorrectedProduct] = Field(default_factory=list)
    corrections_summary: str


def is_enabled() -> bool:
    return bool(settings.ai_integrity_enabled and settings.openai_api_key)


def get_completion_client():
    from openai import OpenAI

    return OpenAI(api_key=settings.openai_api_key)


def _build_user_message(records: List[ProductRecord]) -> str:
    payload = [record.model_dump() for record in records]
    return "Here is the product data:\n" + json.dumps(payload, ensure_ascii=False, indent=2)


def correct_product_data(records: List[ProductRecord], client=None, model: Optional[str] = None) -> CorrectionOutput:
    """Ask the completion service for corrected rows; raises IntegrityCheckError on any failure."""
    client = client or get_completion_client()
    try:
        resp = client.chat.completions.create(
            model=model or settings.openai_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": _build_user_message(records)},
            ],
            response_format=RESPONSE_FORMAT,
        )
        content = resp.choices[0].message.content
    except Exception as exc:
        raise IntegrityCheckError(f"Completion service request failed: {exc}") from exc

    if not content:
        raise IntegrityCheckError("Completion service returned an empty response")

    try:
        output = CorrectionOutput.model_validate(json.loads(content))
    except json.JSONDecodeError as exc:
        raise IntegrityCheckError(f"Completion service returned invalid JSON: {exc}") from exc
    except ValidationError as exc:
        raise IntegrityCheckError(f"Completion output failed validation: {field_errors(exc)}") from exc

    known_ids = {record.id for record in records}
    unknown = [item.id for item in output.corrected_products if item.id not in known_ids]
    if unknown:
        raise IntegrityCheckError(f"Completion output references unknown products: {', '.join(unknown)}")
    return output


def scan_products(db: Session, client=None) -> ActionResult:
    """Fetch every product and return the original rows next to the model's corrections."""
    if not is_enabled():
        return ActionResult(success=False, message=DISABLED_MESSAGE, kind="disabled")

    try:
        products, _ = crud.list_products(db)
    except SQLAlchemyError as exc:
        db.rollback()
        LOGGER.error("Database error while loading products for integrity scan: %s", exc)
        return ActionResult(success=False, message=str(exc), kind="storage")

    records = [ProductRecord.from_product(product) for product in products]
    if not records:
        return ActionResult(
            success=True,
            message="No products to check.",
            data={"original_products": [], "ai_output": CorrectionOutput(corrections_summary="No products.")},
        )

    try:
        output = correct_product_data(records, client=client)
    except IntegrityCheckError as exc:
        LOGGER.error("Integrity scan failed: %s", exc)
        return ActionResult(success=False, message=str(exc), kind="external")

    LOGGER.info("Integrity scan returned %d corrected products", len(output.corrected_products))
    return ActionResult(
        success=True,
        message=output.corrections_summary,
        data={"original_products": records, "ai_output": output},
    )


def apply_corrections(db: Session, corrected: List[Dict[str, Any]]) -> ActionResult:
    """Write corrected rows back through the normal update action."""
    if not is_enabled():
        return ActionResult(success=False, message=DISABLED_MESSAGE, kind="disabled")

    try:
        rows = [CorrectedProduct.model_validate(item) for item in corrected or []]
    except ValidationError as exc:
        return ActionResult(success=False, message="Validation error.", errors=field_errors(exc), kind="validation")

    requested = len(rows)
    succeeded = 0
    failures: Dict[str, List[str]] = {}
    for row in rows:
        try:
            stored = crud.get_product(db, row.id)
        except SQLAlchemyError as exc:
            db.rollback()
            underlying = getattr(exc, "orig", None) or exc
            LOGGER.error("Database error while loading product %s for correction: %s", row.id, underlying)
            failures[row.id] = [str(underlying)]
            continue
        if stored is None:
            failures[row.id] = ["Product not found."]
            continue
        form_data = {
            "name": row.name,
            "description": row.description if row.description is not None else stored.description,
            "image": row.image,
            "category": row.category,
            "price": stored.price,
            "is_active": row.is_active,
        }
        result = update_product(db, row.id, form_data)
        if result.success:
            succeeded += 1
        else:
            failures[row.id] = [result.message] + [
                f"{field}: {message}" for field, messages in result.errors.items() for message in messages
            ]

    if failures:
        LOGGER.warning("Applied %s of %s corrections; failures: %s", succeeded, requested, failures)
    return ActionResult(
        success=succeeded > 0 or requested == 0,
        message=f"{succeeded} of {requested} corrections applied.",
        errors=failures,
        revalidate=[PRODUCTS_PATH],
        succeeded=succeeded,
        requested=requested,
    )
