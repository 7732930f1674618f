from fastapi import FastAPI, Depends, HTTPException, UploadFile, File, Query, Form, Request, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
import logging
import os

from nuvyra_admin.database import get_db, init_db, settings, SessionLocal
from nuvyra_admin import actions, crud, integrity
from nuvyra_admin.actions import ActionResult
from nuvyra_admin.auth import (
    AuthError,
    LOGIN_PATH,
    get_current_user,
    is_admin_path,
    post_login_target,
    resolve_gate,
    sign_in,
    sign_out,
)
from nuvyra_admin.imagehost import (
    ImageHostError,
    ImageHostNotConfiguredError,
    InvalidImageError,
    upload_image_bytes,
)
from nuvyra_admin.schemas import (
    BulkIdsRequest,
    BulkToggleRequest,
    ProductListResponse,
    ProductResponse,
    SiteSettingsResponse,
    ToggleRequest,
    coerce_bool,
)

LOGGER = logging.getLogger(__name__)

# Create tables and seed the settings row / admin account
init_db()

app = FastAPI(title="Nuvyra Store Admin API", version="1.0.0")

# Configure CORS origins:
# - Defaults cover the local storefront/admin dev servers.
# - CORS_ALLOW_ORIGINS can override the list (comma separated).
# - CORS_EXTRA_ORIGINS appends values without losing the defaults.
DEFAULT_CORS_ORIGINS: List[str] = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://localhost:9002",
]


def _split_origins(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part and part.strip()]


def _dedupe(origins: List[str]) -> List[str]:
    seen = set()
    deduped: List[str] = []
    for origin in origins:
        if origin and origin not in seen:
            deduped.append(origin)
            seen.add(origin)
    return deduped


def _get_cors_allow_origins() -> List[str]:
    configured = _split_origins(os.getenv("CORS_ALLOW_ORIGINS", ""))
    extras = _split_origins(os.getenv("CORS_EXTRA_ORIGINS", ""))

    origins = configured or list(DEFAULT_CORS_ORIGINS)
    if extras:
        origins.extend(extras)

    return _dedupe(origins)


def _is_authenticated(token: Optional[str]) -> bool:
    if not token:
        return False
    db = SessionLocal()
    try:
        return get_current_user(db, token) is not None
    finally:
        db.close()


@app.middleware("http")
async def auth_gate(request: Request, call_next):
    """Redirect anonymous visitors away from /admin and signed-in admins away from /login."""
    path = request.url.path
    authenticated = False
    if is_admin_path(path) or path in (LOGIN_PATH, "/"):
        token = request.cookies.get(settings.session_cookie_name)
        authenticated = await run_in_threadpool(_is_authenticated, token)

    target = resolve_gate(path, authenticated)
    if target is not None:
        LOGGER.debug("Auth gate: %s -> %s", path, target)
        return RedirectResponse(target, status_code=303)
    return await call_next(request)


# Registered after auth_gate so it wraps it: preflight requests carry no session cookie.
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


_STATUS_BY_KIND = {
    "validation": 400,
    "not_found": 404,
    "storage": 500,
    "external": 502,
    "disabled": 503,
}


def _raise_for_result(result: ActionResult) -> None:
    if result.success or result.kind is None:
        return
    raise HTTPException(
        status_code=_STATUS_BY_KIND.get(result.kind, 400),
        detail={"message": result.message, "errors": result.errors},
    )


def _result_payload(result: ActionResult, **extra) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": result.success,
        "message": result.message,
        "revalidate": result.revalidate,
    }
    if result.requested is not None:
        payload["succeeded"] = result.succeeded
        payload["requested"] = result.requested
    if result.errors:
        payload["errors"] = result.errors
    payload.update(extra)
    return payload


def _product_json(product) -> Dict[str, Any]:
    return ProductResponse.model_validate(product).model_dump(mode="json")


def require_admin(request: Request, db: Session = Depends(get_db)):
    user = get_current_user(db, request.cookies.get(settings.session_cookie_name))
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


# ---------------------------------------------------------------------------
# Sign-in / sign-out
# ---------------------------------------------------------------------------

@app.get("/login")
def login_form(redirect: Optional[str] = Query(None)):
    return {
        "message": "Sign in to the Nuvyra Store admin",
        "fields": ["email", "password"],
        "redirect": redirect,
    }


@app.post("/login")
def login(
    email: str = Form(...),
    password: str = Form(...),
    redirect: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    try:
        session = sign_in(db, email, password)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc))

    response = RedirectResponse(post_login_target(redirect), status_code=303)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=session.token,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.session_cookie_secure,
    )
    return response


@app.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    sign_out(db, request.cookies.get(settings.session_cookie_name))
    response = RedirectResponse(LOGIN_PATH, status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response


@app.get("/admin/me")
def current_admin(user=Depends(require_admin)):
    return {"id": user.id, "email": user.email}


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------

@app.get("/admin/products", response_model=ProductListResponse)
def get_products(
    category: Optional[str] = Query(None),
    is_active: Optional[str] = Query(None, alias="isActive"),
    sort_by: str = Query("name", alias="sortBy"),
    sort_order: str = Query("asc", alias="sortOrder"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """List products with optional category/status filters and name/created_at ordering"""
    active_filter = None
    if is_active not in (None, ""):
        try:
            active_filter = coerce_bool(is_active)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

    offset = (page - 1) * page_size
    products, total = crud.list_products(
        db,
        category=category,
        is_active=active_filter,
        sort_by=sort_by,
        sort_order=sort_order,
        search=search,
        offset=offset,
        limit=page_size,
    )
    total_pages = (total + page_size - 1) // page_size

    return ProductListResponse(
        items=products,
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@app.get("/admin/products/categories")
def get_categories(db: Session = Depends(get_db)):
    return {"categories": crud.distinct_categories(db)}


@app.post("/admin/products/images", status_code=201)
async def upload_product_image(file: UploadFile = File(...)):
    """Upload an image file to the image host and return its public URL"""
    data = await file.read()
    try:
        url = await run_in_threadpool(upload_image_bytes, data, file.filename or "", file.content_type)
    except InvalidImageError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ImageHostNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    except ImageHostError as exc:
        LOGGER.error("Image upload failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return {"url": url}


@app.post("/admin/products/bulk-delete")
def bulk_delete(payload: BulkIdsRequest, db: Session = Depends(get_db)):
    result = actions.bulk_delete_products(db, payload.ids)
    _raise_for_result(result)
    return _result_payload(result)


@app.post("/admin/products/bulk-toggle")
def bulk_toggle(payload: BulkToggleRequest, db: Session = Depends(get_db)):
    result = actions.bulk_toggle_product_status(db, payload.ids, payload.is_active)
    _raise_for_result(result)
    return _result_payload(result)


@app.get("/admin/products/{product_id}", response_model=ProductResponse)
def get_product(product_id: str, db: Session = Depends(get_db)):
    product = crud.get_product(db, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/admin/products", status_code=201)
def create_product(form_data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    result = actions.create_product(db, form_data)
    _raise_for_result(result)
    return _result_payload(result, product=_product_json(result.data))


@app.put("/admin/products/{product_id}")
def update_product(product_id: str, form_data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    result = actions.update_product(db, product_id, form_data)
    _raise_for_result(result)
    return _result_payload(result, product=_product_json(result.data))


@app.delete("/admin/products/{product_id}")
def delete_product(product_id: str, db: Session = Depends(get_db)):
    result = actions.delete_product(db, product_id)
    _raise_for_result(result)
    return _result_payload(result)


@app.post("/admin/products/{product_id}/toggle")
def toggle_product(product_id: str, payload: ToggleRequest, db: Session = Depends(get_db)):
    result = actions.toggle_product_status(db, product_id, payload.field, payload.value)
    _raise_for_result(result)
    return _result_payload(result, product=_product_json(result.data))


# ---------------------------------------------------------------------------
# Site settings
# ---------------------------------------------------------------------------

@app.get("/admin/settings", response_model=SiteSettingsResponse)
def get_site_settings(db: Session = Depends(get_db)):
    row = crud.get_site_settings(db)
    if row is None:
        raise HTTPException(status_code=404, detail="Site settings not found")
    return row


@app.put("/admin/settings")
def update_site_settings(form_data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    result = actions.update_site_settings(db, form_data)
    _raise_for_result(result)
    settings_json = SiteSettingsResponse.model_validate(result.data).model_dump(mode="json")
    return _result_payload(result, settings=settings_json)


# ---------------------------------------------------------------------------
# AI data integrity
# ---------------------------------------------------------------------------

@app.post("/admin/data-integrity/scan")
def scan_data_integrity(db: Session = Depends(get_db)):
    result = integrity.scan_products(db)
    _raise_for_result(result)
    data = result.data
    return _result_payload(
        result,
        original_products=[record.model_dump(mode="json") for record in data["original_products"]],
        ai_output=data["ai_output"].model_dump(mode="json"),
    )


@app.post("/admin/data-integrity/apply")
def apply_data_integrity(
    corrected_products: List[Dict[str, Any]] = Body(..., embed=True),
    db: Session = Depends(get_db),
):
    result = integrity.apply_corrections(db, corrected_products)
    _raise_for_result(result)
    return _result_payload(result)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
