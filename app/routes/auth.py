import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session, select

from app.database import get_session
from app.models.user import User
from app.schemas.user_schemas import RegisterResponse, Token, UserLogin, UserRead, UserRegister
from app.utils.hash import hash_password, verify_password
from app.utils.token import get_current_user, issue_user_token

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/register", response_model=RegisterResponse, status_code=201)
def register_user(payload: UserRegister, session: Session = Depends(get_session)):
    email = payload.email.lower()
    if session.exec(select(User).where(User.email == email)).first():
        raise HTTPException(400, "Email already registered")

    user = User(
        first_name=payload.first_name,
        last_name=payload.last_name,
        username=payload.username or email,
        email=email,
        password=hash_password(payload.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    logger.info(f"User {user.id} registered")

    return RegisterResponse(message="Registration successful.", user=UserRead.model_validate(user))


@router.post("/login", response_model=Token)
def login(payload: UserLogin, session: Session = Depends(get_session)):
    user = session.exec(select(User).where(User.email == payload.email.lower())).first()

    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(401, "Invalid email or password")

    if not user.can_login:
        raise HTTPException(403, "User account is disabled")

    return Token(access_token=issue_user_token(user), user=UserRead.model_validate(user))


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(get_current_user)):
    return current_user
