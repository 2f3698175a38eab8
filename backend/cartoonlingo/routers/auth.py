from datetime import datetime, timedelta, timezone
from typing import Optional, Dict
import uuid

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, Field
import logging

from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import AuthUser, AuthSession

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

GUEST_NAMES = ("guest", "guests")
# Guests never log in with a password; this hash matches nothing
_NO_PASSWORD = "!"


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	username: str


class UserProfile(BaseModel):
	username: str
	email: Optional[str] = None
	total_xp: int = 0
	streak: int = 0
	level: int = 1
	hearts: int = 5
	daily_goal: int = 15


_users: Dict[str, str] = {}


def _ensure_seed_user() -> None:
	username = settings.seed_username
	password = settings.seed_password_plain
	if username and password and username not in _users:
		_users[username] = pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(plain_password, hashed_password)


def _ensure_user_row(db: Session, username: str) -> AuthUser:
	row = db.get(AuthUser, username)
	if row is None:
		row = AuthUser(username=username, password_hash=_NO_PASSWORD)
		db.add(row)
		db.commit()
	return row


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	# Check for guest users (case-insensitive)
	if username.lower() in GUEST_NAMES:
		_ensure_user_row(db, username.lower())
		return User(username=username.lower())

	# Try DB-backed users first
	user_row = db.query(AuthUser).filter(AuthUser.username == username).first()
	if user_row and user_row.password_hash != _NO_PASSWORD and verify_password(password, user_row.password_hash):
		return User(username=username)
	# Fallback to seed in-memory user for dev convenience
	_ensure_seed_user()
	hashed = _users.get(username)
	if hashed and verify_password(password, hashed):
		_ensure_user_row(db, username)
		return User(username=username)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	"""Return a safe JWT expiry timestamp.

	Uses the configured token lifetime when no explicit delta is given, and
	falls back to 30 days when that is unset or not positive.
	"""
	delta = expires_delta
	if delta is None:
		minutes = getattr(settings, "access_token_expire_minutes", None)
		if isinstance(minutes, int) and minutes > 0:
			delta = timedelta(minutes=minutes)
		else:
			delta = timedelta(days=30)
	now = datetime.now(timezone.utc)
	try:
		return now + delta
	except OverflowError:
		# Cap at far future but within datetime bounds
		return datetime.max.replace(tzinfo=timezone.utc)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	expire = _resolve_expiry(expires_delta)
	to_encode.update({"exp": expire})
	encoded_jwt = jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
	return encoded_jwt


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		logger.info("failed login for %s", form_data.username)
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	# Create a new session id (jti) and persist server-side
	session_id = uuid.uuid4().hex
	access_token = create_access_token({"sub": user.username, "jti": session_id})
	db.merge(AuthSession(session_id=session_id, username=user.username))
	db.commit()
	return Token(access_token=access_token)


def _decode(token: str) -> tuple:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise credentials_exception
	username: str | None = payload.get("sub")
	jti: str | None = payload.get("jti")
	if username is None or jti is None:
		raise credentials_exception
	return username, jti


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	username, jti = _decode(token)
	# The session row must still exist; logout deletes it
	row = db.get(AuthSession, jti)
	if not row or row.username != username:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	row.last_activity_at = datetime.utcnow()
	db.add(row)
	db.commit()
	return User(username=username)


def _profile(row: AuthUser) -> UserProfile:
	return UserProfile(
		username=row.username,
		email=row.email,
		total_xp=row.total_xp or 0,
		streak=row.streak or 0,
		level=row.level,
		hearts=row.hearts,
		daily_goal=row.daily_goal,
	)


@router.get("/me", response_model=UserProfile)
async def me(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	return _profile(_ensure_user_row(db, user.username))


class ProfileUpdate(BaseModel):
	daily_goal: Optional[int] = Field(default=None, ge=1, le=240)
	email: Optional[str] = None


@router.patch("/me", response_model=UserProfile)
async def update_me(req: ProfileUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
	row = _ensure_user_row(db, user.username)
	if req.daily_goal is not None:
		row.daily_goal = req.daily_goal
	if req.email is not None:
		row.email = req.email.strip() or None
	db.add(row)
	db.commit()
	return _profile(row)


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)):
	_, jti = _decode(token)
	row = db.get(AuthSession, jti)
	if row is not None:
		db.delete(row)
		db.commit()
	return {"message": "Logged out successfully"}


class RegisterRequest(BaseModel):
	username: str
	password: str
	email: str


@router.post("/register", status_code=201)
async def register(req: RegisterRequest, db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	password = req.password or ""
	email = (req.email or "").strip()
	if not username or not password:
		raise HTTPException(status_code=400, detail="username and password are required")
	if "@" not in email:
		raise HTTPException(status_code=400, detail="a valid email is required")
	if len(username) < 3 or len(username) > 128:
		raise HTTPException(status_code=400, detail="username must be 3-128 characters")
	if len(password) < 6:
		raise HTTPException(status_code=400, detail="password must be at least 6 characters")
	if username.lower() in GUEST_NAMES:
		raise HTTPException(status_code=409, detail="username already exists")
	# Check exists
	existing = db.query(AuthUser).filter(AuthUser.username == username).first()
	if existing:
		raise HTTPException(status_code=409, detail="username already exists")
	row = AuthUser(username=username, password_hash=pwd_context.hash(password), email=email)
	db.add(row)
	db.commit()
	return {"ok": True}
