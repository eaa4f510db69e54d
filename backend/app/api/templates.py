"""Invoice template endpoints."""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFound
from backend.app.core.security import get_current_user
from backend.app.crud.crud_template import template_crud
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.template import TemplateCreate, TemplateRead, TemplateUpdate
from backend.app.services.binder import parse_template

router = APIRouter(prefix="/templates", tags=["templates"])


def _get_owned_template(db: Session, template_id: int, owner_id: int):
    template = template_crud.get(db, template_id=template_id, owner_id=owner_id)
    if not template:
        raise NotFound("Template not found")
    return template


@router.post("/", response_model=TemplateRead, status_code=status.HTTP_201_CREATED)
async def create_template(
    template_in: TemplateCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    # Reject malformed placeholder blocks up front rather than at render time
    parse_template(template_in.html)
    return template_crud.create(db, obj_in=template_in, owner_id=current_user.id)


@router.get("/", response_model=List[TemplateRead])
async def list_templates(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return template_crud.get_multi(db, owner_id=current_user.id)


@router.get("/{template_id}", response_model=TemplateRead)
async def get_template(template_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return _get_owned_template(db, template_id, current_user.id)


@router.put("/{template_id}", response_model=TemplateRead)
async def update_template(
    template_id: int,
    template_in: TemplateUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    template = _get_owned_template(db, template_id, current_user.id)
    if template_in.html is not None:
        parse_template(template_in.html)
    return template_crud.update(db, db_obj=template, obj_in=template_in)


@router.post("/{template_id}/default", response_model=TemplateRead)
async def set_default_template(
    template_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    template = _get_owned_template(db, template_id, current_user.id)
    return template_crud.set_default(db, db_obj=template)


@router.delete("/{template_id}", response_model=TemplateRead)
async def delete_template(template_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    template = _get_owned_template(db, template_id, current_user.id)
    return template_crud.delete(db, db_obj=template)
