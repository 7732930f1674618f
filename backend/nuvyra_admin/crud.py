"""Thin query helpers over the products and site_settings tables."""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from nuvyra_admin.database import SITE_SETTINGS_ID
from nuvyra_admin.models import Product, SiteSettings
from nuvyra_admin.schemas import normalize_category

SORTABLE_FIELDS = {
    "name": Product.name,
    "created_at": Product.created_at,
}


def get_product(db: Session, product_id: str) -> Optional[Product]:
    return db.query(Product).filter(Product.id == product_id).first()


def list_products(
    db: Session,
    category: Optional[str] = None,
    is_active: Optional[bool] = None,
    sort_by: str = "name",
    sort_order: str = "asc",
    search: Optional[str] = None,
    offset: int = 0,
    limit: Optional[int] = None,
) -> Tuple[List[Product], int]:
    query = db.query(Product)

    if category:
        query = query.filter(Product.category == normalize_category(category))
    if is_active is not None:
        query = query.filter(Product.is_active == is_active)
    if search:
        query = query.filter(Product.name.icontains(search, autoescape=True))

    column = SORTABLE_FIELDS.get(sort_by, Product.name)
    if sort_order == "desc":
        query = query.order_by(column.desc(), Product.id.asc())
    else:
        query = query.order_by(column.asc(), Product.id.asc())

    total = query.count()
    if offset:
        query = query.offset(offset)
    if limit is not None:
        query = query.limit(limit)
    return query.all(), total


def distinct_categories(db: Session) -> List[str]:
    rows = (
        db.query(Product.category)
        .filter(Product.category.isnot(None), Product.category != "")
        .all()
    )
    normalized = {normalize_category(category) for (category,) in rows if category}
    normalized.discard("")
    return sorted(normalized)


def insert_product(db: Session, values: Dict) -> Product:
    product = Product(**values)
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


def update_product(db: Session, product: Product, values: Dict) -> Product:
    for field, value in values.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, product: Product) -> None:
    db.delete(product)
    db.commit()


def update_products_in(db: Session, product_ids: Iterable[str], values: Dict) -> int:
    """Batched UPDATE ... WHERE id IN (...); returns the number of rows matched."""
    ids = list(product_ids)
    if not ids:
        return 0
    count = (
        db.query(Product)
        .filter(Product.id.in_(ids))
        .update(values, synchronize_session=False)
    )
    db.commit()
    return count


def delete_products_in(db: Session, product_ids: Iterable[str]) -> int:
    ids = list(product_ids)
    if not ids:
        return 0
    count = db.query(Product).filter(Product.id.in_(ids)).delete(synchronize_session=False)
    db.commit()
    return count


def get_site_settings(db: Session) -> Optional[SiteSettings]:
    return db.get(SiteSettings, SITE_SETTINGS_ID)


def update_site_settings(db: Session, values: Dict) -> Optional[SiteSettings]:
    row = get_site_settings(db)
    if row is None:
        return None
    for field, value in values.items():
        setattr(row, field, value)
    db.commit()
    db.refresh(row)
    return row
