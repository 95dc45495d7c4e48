"""
Custom booking form fields shown by the wizard, with conditional display rules
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_admin
from ..database import get_db
from ..models import BookingFormField, User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/form-fields", tags=["Form Fields"])
admin_router = APIRouter(prefix="/admin/form-fields", tags=["Admin Form Fields"])

FIELD_TYPES = ("text", "textarea", "email", "phone", "number", "select", "checkbox", "radio", "date")
CONDITION_OPERATORS = ("==", "!=", "contains", "in")


class FieldCondition(BaseModel):
    field: str
    operator: str = "=="
    value: Any = None

    @field_validator("operator")
    @classmethod
    def check_operator(cls, v):
        if v not in CONDITION_OPERATORS:
            raise ValueError(f"operator must be one of {', '.join(CONDITION_OPERATORS)}")
        return v


class FormFieldBase(BaseModel):
    label: Optional[str] = Field(None, max_length=255)
    type: Optional[str] = None
    placeholder: Optional[str] = Field(None, max_length=255)
    help_text: Optional[str] = Field(None, max_length=500)
    required: Optional[bool] = None
    options: Optional[list[Any]] = None
    validation_rules: Optional[list[Any]] = None
    conditions: Optional[list[FieldCondition]] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("type", check_fields=False)
    @classmethod
    def check_type(cls, v):
        if v is not None and v not in FIELD_TYPES:
            raise ValueError(f"type must be one of {', '.join(FIELD_TYPES)}")
        return v


class FormFieldCreate(FormFieldBase):
    key: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    label: str = Field(..., min_length=1, max_length=255)
    type: str = "text"
    required: bool = False
    sort_order: int = 0
    is_active: bool = True


class FormFieldUpdate(FormFieldBase):
    pass


class FormFieldResponse(BaseModel):
    id: int
    key: str
    label: str
    type: str
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    required: bool
    options: Optional[list[Any]] = None
    validation_rules: Optional[list[Any]] = None
    conditions: Optional[list[dict]] = None
    sort_order: int
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class VisibleFieldsRequest(BaseModel):
    values: dict[str, Any] = {}


def _get_field(db: Session, field_id: int) -> BookingFormField:
    field = db.query(BookingFormField).filter(BookingFormField.id == field_id).first()
    if not field:
        raise HTTPException(status_code=404, detail="Form field not found")
    return field


def _active_fields(db: Session) -> list[BookingFormField]:
    return (
        db.query(BookingFormField)
        .filter(BookingFormField.is_active.is_(True))
        .order_by(BookingFormField.sort_order, BookingFormField.id)
        .all()
    )


# ============================================================================
# PUBLIC
# ============================================================================


@router.get("", response_model=list[FormFieldResponse])
async def list_form_fields(db: Session = Depends(get_db)):
    return _active_fields(db)


@router.post("/visible", response_model=list[FormFieldResponse])
async def visible_form_fields(data: VisibleFieldsRequest, db: Session = Depends(get_db)):
    """Active fields whose display conditions hold for the wizard's current values"""
    return [field for field in _active_fields(db) if field.should_display(data.values)]


# ============================================================================
# ADMIN
# ============================================================================


@admin_router.get("", response_model=list[FormFieldResponse])
async def admin_list_form_fields(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return db.query(BookingFormField).order_by(BookingFormField.sort_order, BookingFormField.id).all()


@admin_router.post("", response_model=FormFieldResponse, status_code=201)
async def create_form_field(
    data: FormFieldCreate,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    if db.query(BookingFormField).filter(BookingFormField.key == data.key).first():
        raise HTTPException(status_code=409, detail=f"A field with key '{data.key}' already exists")

    fields = data.model_dump()
    fields["conditions"] = fields["conditions"] or []
    fields["options"] = fields["options"] or []
    fields["validation_rules"] = fields["validation_rules"] or []
    field = BookingFormField(**fields)
    db.add(field)
    db.commit()
    db.refresh(field)
    logger.info(f"📝 Form field created: {field.key}")
    return field


@admin_router.get("/{field_id}", response_model=FormFieldResponse)
async def get_form_field(
    field_id: int,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    return _get_field(db, field_id)


@admin_router.patch("/{field_id}", response_model=FormFieldResponse)
async def update_form_field(
    field_id: int,
    data: FormFieldUpdate,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    field = _get_field(db, field_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("label", "type", "required", "sort_order", "is_active"):
            continue
        setattr(field, key, value)
    db.commit()
    db.refresh(field)
    return field


@admin_router.delete("/{field_id}")
async def delete_form_field(
    field_id: int,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    field = _get_field(db, field_id)
    db.delete(field)
    db.commit()
    logger.info(f"🗑️ Form field deleted: {field.key}")
    return {"message": "Form field deleted successfully"}
