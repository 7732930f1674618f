"""
Use-case functions behind the admin views.

Every action validates its input, talks to the database through ``crud`` and
returns an ``ActionResult``. Nothing raises past this module: validation,
storage and lookup failures are all reported in the result so the caller can
render them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from nuvyra_admin import crud
from nuvyra_admin.imagehost import rehost_image_url
from nuvyra_admin.schemas import (
    ProductForm,
    SettingsForm,
    coerce_bool,
    field_errors,
    parse_banner_images,
    parse_keywords,
)

LOGGER = logging.getLogger(__name__)

PRODUCTS_PATH = "/admin/products"
SETTINGS_PATH = "/admin/settings"

# Product.is_visible was dropped together with soft delete.
TOGGLEABLE_FIELDS = {"is_active"}


def product_edit_path(product_id: str) -> str:
    return f"{PRODUCTS_PATH}/edit/{product_id}"


@dataclass
class ActionResult:
    success: bool
    message: str = ""
    data: Any = None
    errors: Dict[str, List[str]] = field(default_factory=dict)
    revalidate: List[str] = field(default_factory=list)
    # validation | not_found | storage | external | disabled
    kind: Optional[str] = None
    succeeded: Optional[int] = None
    requested: Optional[int] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _revalidate(*paths: str) -> List[str]:
    for path in paths:
        LOGGER.debug("Revalidating %s", path)
    return list(paths)


def _validation_failure(exc: ValidationError) -> ActionResult:
    errors = field_errors(exc)
    return ActionResult(success=False, message="Validation error.", errors=errors, kind="validation")


def _storage_failure(db: Session, exc: SQLAlchemyError, operation: str) -> ActionResult:
    db.rollback()
    underlying = getattr(exc, "orig", None) or exc
    LOGGER.error("Database error while %s: %s", operation, underlying)
    return ActionResult(success=False, message=str(underlying), kind="storage")


def _not_found(product_id: str) -> ActionResult:
    return ActionResult(success=False, message=f"Product {product_id} not found.", kind="not_found")


def _unique_ids(product_ids: Optional[Iterable]) -> List[str]:
    return list(dict.fromkeys(str(pid) for pid in (product_ids or []) if pid))


def _bulk_result(succeeded: int, requested: int, verb: str) -> ActionResult:
    if succeeded < requested:
        LOGGER.warning("Bulk action: only %s of %s products %s", succeeded, requested, verb)
    return ActionResult(
        success=succeeded > 0,
        message=f"{succeeded} of {requested} products {verb}.",
        revalidate=_revalidate(PRODUCTS_PATH),
        succeeded=succeeded,
        requested=requested,
    )


def create_product(db: Session, form_data: Mapping) -> ActionResult:
    try:
        form = ProductForm.model_validate(dict(form_data or {}))
    except ValidationError as exc:
        return _validation_failure(exc)

    values = form.model_dump()
    values["image"] = rehost_image_url(form.image)
    values["created_at"] = _utcnow()

    try:
        product = crud.insert_product(db, values)
    except SQLAlchemyError as exc:
        return _storage_failure(db, exc, "creating product")

    LOGGER.info("Created product %s (%s)", product.id, product.name)
    return ActionResult(
        success=True,
        message="Product created.",
        data=product,
        revalidate=_revalidate(PRODUCTS_PATH),
    )


def update_product(db: Session, product_id: str, form_data: Mapping) -> ActionResult:
    try:
        form = ProductForm.model_validate(dict(form_data or {}))
    except ValidationError as exc:
        return _validation_failure(exc)

    try:
        product = crud.get_product(db, product_id)
        if product is None:
            return _not_found(product_id)
        values = form.model_dump()
        values["image"] = rehost_image_url(form.image)
        product = crud.update_product(db, product, values)
    except SQLAlchemyError as exc:
        return _storage_failure(db, exc, f"updating product {product_id}")

    LOGGER.info("Updated product %s", product_id)
    return ActionResult(
        success=True,
        message="Product updated.",
        data=product,
        revalidate=_revalidate(PRODUCTS_PATH, product_edit_path(product_id)),
    )


def delete_product(db: Session, product_id: str) -> ActionResult:
    """Permanently remove one product."""
    try:
        product = crud.get_product(db, product_id)
        if product is None:
            return _not_found(product_id)
        crud.delete_product(db, product)
    except SQLAlchemyError as exc:
        return _storage_failure(db, exc, f"deleting product {product_id}")

    LOGGER.info("Deleted product %s", product_id)
    return ActionResult(
        success=True,
        message="Product deleted.",
        revalidate=_revalidate(PRODUCTS_PATH, product_edit_path(product_id)),
    )


def toggle_product_status(db: Session, product_id: str, field_name: str, value=None) -> ActionResult:
    """Set (or flip, when value is None) one boolean status field."""
    if field_name not in TOGGLEABLE_FIELDS:
        message = f"Field '{field_name}' cannot be toggled."
        return ActionResult(success=False, message=message, errors={"field": [message]}, kind="validation")

    if value is not None:
        try:
            value = coerce_bool(value)
        except ValueError as exc:
            return ActionResult(success=False, message=str(exc), errors={"value": [str(exc)]}, kind="validation")

    try:
        product = crud.get_product(db, product_id)
        if product is None:
            return _not_found(product_id)
        new_value = (not getattr(product, field_name)) if value is None else value
        product = crud.update_product(db, product, {field_name: new_value})
    except SQLAlchemyError as exc:
        return _storage_failure(db, exc, f"toggling {field_name} on {product_id}")

    return ActionResult(
        success=True,
        message="Product status updated.",
        data=product,
        revalidate=_revalidate(PRODUCTS_PATH),
    )


def bulk_delete_products(db: Session, product_ids: Iterable) -> ActionResult:
    ids = _unique_ids(product_ids)
    if not ids:
        return ActionResult(success=False, message="No products selected.", kind="validation", succeeded=0, requested=0)

    try:
        deleted = crud.delete_products_in(db, ids)
    except SQLAlchemyError as exc:
        result = _storage_failure(db, exc, "bulk deleting products")
        result.succeeded, result.requested = 0, len(ids)
        return result

    return _bulk_result(deleted, len(ids), "deleted")


def bulk_toggle_product_status(db: Session, product_ids: Iterable, is_active) -> ActionResult:
    ids = _unique_ids(product_ids)
    try:
        is_active = coerce_bool(is_active)
    except ValueError as exc:
        return ActionResult(
            success=False,
            message=str(exc),
            errors={"is_active": [str(exc)]},
            kind="validation",
            succeeded=0,
            requested=len(ids),
        )
    if not ids:
        return ActionResult(success=False, message="No products selected.", kind="validation", succeeded=0, requested=0)

    try:
        updated = crud.update_products_in(db, ids, {"is_active": is_active})
    except SQLAlchemyError as exc:
        result = _storage_failure(db, exc, "bulk toggling products")
        result.succeeded, result.requested = 0, len(ids)
        return result

    return _bulk_result(updated, len(ids), "updated")


def update_site_settings(db: Session, form_data: Mapping) -> ActionResult:
    try:
        form = SettingsForm.model_validate(dict(form_data or {}))
    except ValidationError as exc:
        return _validation_failure(exc)

    values = {
        "site_name": form.site_name,
        "default_seo_title": form.default_seo_title,
        "default_seo_description": form.default_seo_description,
        "seo_keywords": parse_keywords(form.seo_keywords),
        "banner_images": parse_banner_images(form.banner_images),
        "updated_at": _utcnow(),
    }

    try:
        row = crud.update_site_settings(db, values)
    except SQLAlchemyError as exc:
        return _storage_failure(db, exc, "updating site settings")

    if row is None:
        LOGGER.error("site_settings row is missing; nothing updated")
        return ActionResult(success=False, message="Site settings not found.", kind="not_found")

    LOGGER.info("Site settings updated")
    return ActionResult(
        success=True,
        message="Site settings updated.",
        data=row,
        revalidate=_revalidate(SETTINGS_PATH),
    )
