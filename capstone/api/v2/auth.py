"""用户认证API - 无外部JWT依赖的签名Token。"""

import base64
import hashlib
import hmac
import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Form, Header, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from capstone.config import get_settings
from capstone.db import get_db
from capstone.models import User, UserRole

router = APIRouter()

_PBKDF2_ROUNDS = 100_000


# === Schemas ===

class Token(BaseModel):
    access_token: str
    token_type: str


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50)
    password: str = Field(min_length=6)
    role: UserRole
    full_name: str = Field(min_length=1, max_length=100)
    email: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    username: str
    role: UserRole
    full_name: str
    email: Optional[str]

    model_config = {"from_attributes": True}


# === Token 工具函数 ===

def hash_password(password: str, salt: Optional[str] = None) -> str:
    """PBKDF2 哈希，格式为 ``salt$hex``。"""
    salt = salt or secrets.token_hex(8)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), _PBKDF2_ROUNDS)
    return f"{salt}${digest.hex()}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    salt, _, _ = hashed_password.partition("$")
    return hmac.compare_digest(hash_password(plain_password, salt), hashed_password)


def _sign(payload_b64: str) -> str:
    secret = get_settings().secret_key
    return hmac.new(secret.encode(), payload_b64.encode(), hashlib.sha256).hexdigest()


def create_token(user_id: int, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=get_settings().token_expire_hours)
    payload = {"sub": user_id, "role": role, "exp": expire.isoformat()}
    payload_b64 = base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()
    return f"{payload_b64}.{_sign(payload_b64)}"


def decode_token(token: str) -> Optional[dict]:
    """校验签名与过期时间，失败返回 None。"""
    parts = token.split(".")
    if len(parts) != 2:
        return None
    payload_b64, signature = parts
    if not hmac.compare_digest(signature, _sign(payload_b64)):
        return None
    try:
        payload = json.loads(base64.urlsafe_b64decode(payload_b64).decode())
        exp = datetime.fromisoformat(payload["exp"])
    except (ValueError, KeyError, TypeError):
        return None
    if datetime.now(timezone.utc) > exp:
        return None
    return payload


def get_user_by_username(db: Session, username: str) -> Optional[User]:
    return db.query(User).filter(User.username == username).first()


async def get_current_user(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> User:
    """从Token获取当前用户。"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="无法验证凭据",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not authorization or not authorization.startswith("Bearer "):
        raise credentials_exception

    payload = decode_token(authorization[7:])
    if not payload or payload.get("sub") is None:
        raise credentials_exception

    user = db.get(User, payload["sub"])
    if user is None:
        raise credentials_exception
    return user


# === API 端点 ===

@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """用户注册。"""
    if get_user_by_username(db, user_data.username):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="用户名已存在"
        )

    user = User(
        username=user_data.username,
        password_hash=hash_password(user_data.password),
        role=user_data.role,
        full_name=user_data.full_name,
        email=user_data.email,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=Token)
async def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db)
):
    """用户登录，返回Token。"""
    user = get_user_by_username(db, username)
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="用户名或密码错误",
        )
    return {"access_token": create_token(user.id, user.role.value), "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """获取当前登录用户信息。"""
    return current_user
