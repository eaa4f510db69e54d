"""CRUD operations for invoice document templates.

Each owner has at most one default template. Whenever a template becomes the
default, the previous default is cleared in the same transaction, with the
owner row locked for the duration; the partial unique index on
``templates(owner_id) WHERE is_default`` rejects anything that slips past.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.errors import Conflict, ValidationFailed
from backend.app.models.template import Template
from backend.app.models.user import User
from backend.app.schemas.template import TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "uq_templates_owner_default"


def _is_default_violation(exc: IntegrityError) -> bool:
    # SQLite reports the indexed column rather than the index name
    message = str(exc.orig)
    return DEFAULT_INDEX_NAME in message or "UNIQUE constraint failed: templates.owner_id" in message


class CRUDTemplate:
    def _clear_other_defaults(self, db: Session, *, owner_id: int, keep_id: Optional[int] = None) -> None:
        db.query(User).filter(User.id == owner_id).with_for_update().first()
        query = db.query(Template).filter(Template.owner_id == owner_id, Template.is_default.is_(True))
        if keep_id is not None:
            query = query.filter(Template.id != keep_id)
        query.update({Template.is_default: False}, synchronize_session="fetch")

    def _commit(self, db: Session, obj: Template) -> Template:
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not _is_default_violation(exc):
                raise ValidationFailed("Template could not be saved: it violates a database constraint") from exc
            logger.warning("Default template update for owner %s lost a race", obj.owner_id)
            raise Conflict("Another default template was set at the same time; retry the request") from exc
        db.refresh(obj)
        return obj

    def create(self, db: Session, *, obj_in: TemplateCreate, owner_id: int) -> Template:
        data = obj_in.model_dump()
        if data.get("is_default"):
            self._clear_other_defaults(db, owner_id=owner_id)
        obj = Template(owner_id=owner_id, **data)
        db.add(obj)
        return self._commit(db, obj)

    def get(self, db: Session, *, template_id: int, owner_id: int) -> Optional[Template]:
        return (
            db.query(Template)
            .filter(Template.id == template_id, Template.owner_id == owner_id)
            .first()
        )

    def get_default(self, db: Session, *, owner_id: int) -> Optional[Template]:
        return (
            db.query(Template)
            .filter(
                Template.owner_id == owner_id,
                Template.is_default.is_(True),
                Template.is_active.is_(True),
            )
            .first()
        )

    def get_multi(self, db: Session, *, owner_id: int) -> List[Template]:
        return (
            db.query(Template)
            .filter(Template.owner_id == owner_id)
            .order_by(Template.created_at.desc(), Template.id.desc())
            .all()
        )

    def update(self, db: Session, *, db_obj: Template, obj_in: TemplateUpdate) -> Template:
        update_data = obj_in.model_dump(exclude_unset=True)
        if update_data.get("is_default"):
            self._clear_other_defaults(db, owner_id=db_obj.owner_id, keep_id=db_obj.id)
        for field, value in update_data.items():
            if value is None and field in ("name", "html", "css", "is_default", "is_active"):
                continue
            setattr(db_obj, field, value)
        return self._commit(db, db_obj)

    def set_default(self, db: Session, *, db_obj: Template) -> Template:
        self._clear_other_defaults(db, owner_id=db_obj.owner_id, keep_id=db_obj.id)
        db_obj.is_default = True
        return self._commit(db, db_obj)

    def delete(self, db: Session, *, db_obj: Template) -> Template:
        db.delete(db_obj)
        db.commit()
        return db_obj


template_crud = CRUDTemplate()
