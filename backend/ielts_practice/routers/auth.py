from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db, utcnow
from ..models import AuthUser, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
# Same scheme, but a missing header yields None instead of a 401
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	clipped = password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
	return pwd_context.hash(clipped)


def verify_password(plain_password: str, hashed_password: str) -> bool:
	clipped = plain_password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
	return pwd_context.verify(clipped, hashed_password)


def _find_user(db: Session, username: str) -> Optional[AuthUser]:
	return db.execute(select(AuthUser).where(AuthUser.username == username)).scalar_one_or_none()


def seed_user(db: Session) -> None:
	"""Create the configured development account if it does not exist yet."""
	username = settings.seed_username
	password = settings.seed_password_plain
	if not username or not password or _find_user(db, username):
		return
	db.add(AuthUser(username=username, password_hash=hash_password(password)))
	db.commit()
	logger.info("Seeded user %s", username)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	row = _find_user(db, username)
	if row and verify_password(password, row.password_hash):
		return User(username=username)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	claims = dict(data, exp=_resolve_expiry(expires_delta))
	return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def open_session(db: Session, username: str) -> str:
	"""Persist a server-side session and return a bearer token bound to it."""
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, username=username))
	db.commit()
	return create_access_token({"sub": username, "jti": session_id})


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return Token(access_token=open_session(db, user.username))


def _decode(token: str) -> tuple[str, str]:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username, jti = payload.get("sub"), payload.get("jti")
	if username is None or jti is None:
		raise credentials_exception
	return username, jti


def _user_from_token(token: str, db: Session) -> User:
	username, jti = _decode(token)
	# Logged-out sessions have no row and stop working before the JWT expires
	row = db.get(AuthSession, jti)
	if not row or row.username != username:
		raise HTTPException(status_code=401, detail="Session expired or revoked")
	row.last_activity_at = utcnow()
	db.commit()
	return User(username=username)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	return _user_from_token(token, db)


def get_optional_user(token: Optional[str] = Depends(optional_oauth2_scheme), db: Session = Depends(get_db)) -> Optional[User]:
	if not token:
		return None
	try:
		return _user_from_token(token, db)
	except HTTPException:
		logger.info("Ignoring invalid bearer token on an anonymous-capable route")
		return None


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	username, jti = _decode(token)
	removed = db.execute(
		delete(AuthSession).where(AuthSession.session_id == jti, AuthSession.username == username)
	).rowcount
	db.commit()
	return {"ok": bool(removed)}


class RegisterRequest(BaseModel):
	username: str = Field(min_length=3, max_length=128)
	password: str = Field(min_length=1)
	email: Optional[str] = None
	phone: Optional[str] = None


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = req.username.strip()
	if len(username) < 3:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if _find_user(db, username):
		raise HTTPException(status_code=409, detail="username already exists")
	db.add(AuthUser(
		username=username,
		password_hash=hash_password(req.password),
		email=(req.email or "").strip() or None,
		phone=(req.phone or "").strip() or None,
	))
	db.commit()
	logger.info("Registered user %s", username)
	return {"ok": True}
