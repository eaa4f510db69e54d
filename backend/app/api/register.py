"""Handles user registration."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backend.app.core.security import get_password_hash
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.user import UserCreate, UserRead
from backend.app.services.default_template import seed_default_template

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register_user(user_in: UserCreate, db: Session = Depends(get_db)):
    email = user_in.email.lower()
    existing = db.query(User).filter(User.email == email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")
    profile = user_in.model_dump(exclude={"email", "password"})
    hashed_password = get_password_hash(user_in.password)  # Hash password before storing
    user = User(email=email, hashed_password=hashed_password, **profile)
    db.add(user)
    db.flush()

    # Every account starts with a usable default template, committed with the user
    seed_default_template(db, owner_id=user.id)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user
