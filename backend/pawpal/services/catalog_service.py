# Overview: Service-layer operations for service categories and clinic services.

"""
Catalog Service

Categories group clinic services; a category whose name contains
"boarding" turns its services into boarding bookings. A category cannot
be removed while services point at it, and a service cannot be removed
once appointments reference it.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Appointment, Category, Service
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_service,
    validate_payload,
)


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "color", "icon", "is_active"},
    ignore_unknown=True,
)

SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"category_id", "name", "description", "price", "duration_minutes", "is_active"},
    ignore_unknown=True,
)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

def _service_counts() -> dict[int, int]:
    rows = (
        db.session.query(Service.category_id, func.count(Service.id))
        .group_by(Service.category_id)
        .all()
    )
    return {category_id: count for category_id, count in rows}


def _category_view(category: Category, counts: dict[int, int]) -> dict:
    data = category.to_dict()
    data["service_count"] = counts.get(category.id, 0)
    return data


def list_categories(*, search: str | None = None, status: str | None = None) -> list[dict]:
    query = db.session.query(Category)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Category.name.ilike(like), Category.description.ilike(like)))
    if status == "active":
        query = query.filter(Category.is_active.is_(True))
    elif status == "inactive":
        query = query.filter(Category.is_active.is_(False))

    counts = _service_counts()
    categories = query.order_by(Category.created_at.desc(), Category.id.desc()).all()
    return [_category_view(c, counts) for c in categories]


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    return category


def category_details(category_id: int) -> dict:
    return _category_view(get_category(category_id), _service_counts())


def _clean_category_name(payload: dict) -> str:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValidationError("Category name is required")
    if len(name) > 100:
        raise ValidationError("Category name must be less than 100 characters")
    return name


def _category_name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first() is not None


def create_category(payload: dict) -> Category:
    payload = dict(payload or {})
    payload["name"] = _clean_category_name(payload)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)

    if _category_name_taken(patch["name"]):
        raise ValidationError("Category name already exists")

    for key in ("color", "icon", "is_active"):
        if patch.get(key) is None:
            patch.pop(key, None)

    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, payload: dict) -> Category:
    category = get_category(category_id)
    payload = dict(payload or {})
    if "name" in payload:
        payload["name"] = _clean_category_name(payload)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)

    new_name = patch.get("name")
    if new_name and _category_name_taken(new_name, exclude_id=category.id):
        raise ValidationError("Category name already exists")

    for key, value in patch.items():
        if key in ("color", "icon", "is_active") and value is None:
            continue
        setattr(category, key, value)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    in_use = db.session.query(func.count(Service.id)).filter(Service.category_id == category.id).scalar()
    if in_use:
        raise ValidationError(f"Cannot delete category. It is being used by {in_use} service(s).")
    db.session.delete(category)
    db.session.commit()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

def list_services(
    *,
    search: str | None = None,
    category: str | None = None,
    status: str | None = None,
) -> list[dict]:
    query = db.session.query(Service).join(Category, Service.category_id == Category.id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Service.name.ilike(like), Service.description.ilike(like)))
    if category and category != "all":
        if str(category).isdigit():
            query = query.filter(Service.category_id == int(category))
        else:
            query = query.filter(Category.name == category)
    if status == "active":
        query = query.filter(Service.is_active.is_(True))
    elif status == "inactive":
        query = query.filter(Service.is_active.is_(False))

    services = query.order_by(Service.created_at.desc(), Service.id.desc()).all()
    return [s.to_dict() for s in services]


def list_active_services() -> list[dict]:
    """Client catalogue: active services ordered by category then name."""
    services = (
        db.session.query(Service)
        .join(Category, Service.category_id == Category.id)
        .filter(Service.is_active.is_(True))
        .order_by(Category.name.asc(), Service.name.asc())
        .all()
    )
    return [s.to_dict() for s in services]


def get_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if service is None:
        raise NotFoundError("Service not found")
    return service


def _validate_service(payload: dict, *, partial: bool) -> dict:
    if not partial or "name" in payload:
        if not str(payload.get("name") or "").strip():
            raise ValidationError("Service name is required")
    if not partial or "price" in payload:
        if payload.get("price") in (None, ""):
            raise ValidationError("Valid price is required")
    if not partial or "duration_minutes" in payload:
        if payload.get("duration_minutes") in (None, ""):
            raise ValidationError("Valid duration is required")
    if not partial or "category_id" in payload:
        if not payload.get("category_id"):
            raise ValidationError("Category is required")

    try:
        patch = validate_payload(model=Service, payload=payload, policy=SERVICE_POLICY, partial=partial)
    except ValidationError as e:
        message = str(e)
        if message.startswith("price"):
            raise ValidationError("Valid price is required")
        if message.startswith("duration_minutes"):
            raise ValidationError("Valid duration is required")
        raise
    enforce_rules_service(patch)

    if "category_id" in patch:
        category = db.session.get(Category, patch["category_id"])
        if category is None or not category.is_active:
            raise ValidationError("Invalid or inactive category selected")
    return patch


def _service_name_taken(name: str, *, exclude_id: int | None = None) -> bool:
    query = db.session.query(Service.id).filter(Service.name == name)
    if exclude_id is not None:
        query = query.filter(Service.id != exclude_id)
    return query.first() is not None


def create_service(payload: dict) -> Service:
    patch = _validate_service(dict(payload or {}), partial=False)
    if _service_name_taken(patch["name"]):
        raise ValidationError("Service name already exists")
    if patch.get("is_active") is None:
        patch["is_active"] = True

    service = Service(**patch)
    db.session.add(service)
    db.session.commit()
    return service


def update_service(service_id: int, payload: dict) -> Service:
    service = get_service(service_id)
    patch = _validate_service(dict(payload or {}), partial=True)
    new_name = patch.get("name")
    if new_name and _service_name_taken(new_name, exclude_id=service.id):
        raise ValidationError("Service name already exists")

    for key, value in patch.items():
        if key == "is_active" and value is None:
            continue
        setattr(service, key, value)
    db.session.commit()
    return service


def delete_service(service_id: int) -> None:
    service = get_service(service_id)
    used = db.session.query(Appointment.id).filter(Appointment.service_id == service.id).first()
    if used:
        raise ValidationError("Cannot delete service that is being used in appointments")
    db.session.delete(service)
    db.session.commit()
