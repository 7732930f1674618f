import uuid

from sqlalchemy import Column, Integer, String, Numeric, Text, DateTime, Boolean, JSON, ForeignKey, Index
from sqlalchemy.sql import func
from nuvyra_admin.database import Base


def _new_product_id() -> str:
    return str(uuid.uuid4())


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_new_product_id)
    name = Column(String, index=True, nullable=False)
    description = Column(Text, nullable=True)
    image = Column(String, nullable=False)
    category = Column(String, index=True, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    # Written once by the create action; updates never include it.
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index('idx_category_name', 'category', 'name'),
    )


class SiteSettings(Base):
    __tablename__ = "site_settings"

    id = Column(Integer, primary_key=True)
    site_name = Column(String, nullable=False, default="Nuvyra Store")
    default_seo_title = Column(String, nullable=False, default="Nuvyra Store")
    default_seo_description = Column(Text, nullable=False, default="")
    seo_keywords = Column(JSON, nullable=False, default=list)
    banner_images = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AdminSession(Base):
    __tablename__ = "admin_sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("admin_users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)
