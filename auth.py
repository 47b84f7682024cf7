"""
Username/password accounts and bearer tokens

Login failures are reported with one generic message whichever factor
was wrong, and token failures are a single "Invalid token" outcome.
"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import bcrypt
from jose import JWTError, jwt
from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, serialize, utc_now
from errors import Conflict, Unauthorized, ValidationError
from schemas import Principal, User
from settings import Settings

logger = logging.getLogger(__name__)

JWT_ALG = "HS256"
INVALID_CREDENTIALS = "Invalid credentials"
PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-().]+$", re.ASCII)
MIN_PHONE_DIGITS = 6
MAX_PASSWORD_BYTES = 72


class IdentifierKind(str, Enum):
    USERNAME = "username"
    EMAIL = "email"
    PHONE = "phone"


@dataclass(frozen=True)
class Identifier:
    kind: IdentifierKind
    value: str

    def query(self) -> Dict[str, str]:
        return {self.kind.value: self.value}


def classify_identifier(raw: str) -> Identifier:
    value = raw.strip()
    if "@" in value:
        return Identifier(IdentifierKind.EMAIL, value.lower())
    digits = re.sub(r"[^0-9]", "", value)
    if PHONE_PATTERN.match(value) and len(digits) >= MIN_PHONE_DIGITS:
        return Identifier(IdentifierKind.PHONE, digits)
    return Identifier(IdentifierKind.USERNAME, value)


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_jwt(payload: Dict[str, Any], secret: str, expire_days: int) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(days=expire_days)
    to_encode = {"exp": exp, "iat": now, **payload}
    return jwt.encode(to_encode, secret, algorithm=JWT_ALG)


def decode_jwt(token: str, secret: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, secret, algorithms=[JWT_ALG])
    except JWTError:
        raise Unauthorized("Invalid token")


def verify_token(token: str, secret: str) -> Principal:
    data = decode_jwt(token, secret)
    if not data.get("sub") or data.get("role") not in ("user", "admin"):
        raise Unauthorized("Invalid token")
    return Principal(id=data["sub"], username=data.get("username", ""), role=data["role"])


def to_principal(user: Dict[str, Any]) -> Principal:
    return Principal(id=str(user.get("id") or user.get("_id")), username=user["username"], role=user.get("role", "user"))


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(user.get("id") or user.get("_id")),
        "username": user["username"],
        "role": user.get("role", "user"),
        "email": user.get("email"),
    }


class UserRepository:
    collection_name = "user"

    def __init__(self, database: Database):
        self.database = database
        self.collection = database[self.collection_name]

    def ensure_indexes(self) -> None:
        self.collection.create_index([("username", ASCENDING)], unique=True)
        self.collection.create_index([("email", ASCENDING)])
        self.collection.create_index([("phone", ASCENDING)])

    def find(self, identifier: Identifier) -> Optional[Dict[str, Any]]:
        return serialize(self.collection.find_one(identifier.query()))

    def exists(self, field: str, value: str) -> bool:
        return self.collection.find_one({field: value}, {"_id": 1}) is not None

    def create(self, user: User) -> Dict[str, Any]:
        return serialize(create_document(self.database, self.collection_name, user))

    def set_password(self, user_id: Any, password_hash: str, role: str) -> None:
        self.collection.update_one(
            {"_id": user_id},
            {"$set": {"passwordHash": password_hash, "role": role, "updatedAt": utc_now()}},
        )


class AuthService:
    # checked against when the account doesn't exist so both paths cost a hash
    _dummy_hash: Optional[str] = None

    def __init__(self, users: UserRepository, settings: Settings):
        self.users = users
        self.settings = settings

    def _dummy(self) -> str:
        if AuthService._dummy_hash is None:
            AuthService._dummy_hash = hash_password("not-a-real-password", self.settings.bcrypt_rounds)
        return AuthService._dummy_hash

    def issue_token(self, principal: Principal) -> str:
        payload = {
            "sub": principal.id,
            "username": principal.username,
            "role": principal.role,
            "kind": "admin" if principal.is_admin else "user",
        }
        return create_jwt(payload, self.settings.jwt_secret, self.settings.token_expire_days)

    def verify_token(self, token: str) -> Principal:
        return verify_token(token, self.settings.jwt_secret)

    def register(
        self,
        username: str,
        password: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        role: str = "user",
    ) -> Tuple[str, Dict[str, Any]]:
        if classify_identifier(username).kind != IdentifierKind.USERNAME:
            raise ValidationError("Username must not look like an email or phone number")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError("Password is too long")
        email = email.strip().lower() if email else None
        phone_digits = re.sub(r"[^0-9]", "", phone) if phone else None
        if self.users.exists("username", username):
            raise Conflict("Username already taken")
        if email and self.users.exists("email", email):
            raise Conflict("Email already registered")
        if phone_digits and self.users.exists("phone", phone_digits):
            raise Conflict("Phone already registered")
        user = User(
            username=username,
            email=email,
            phone=phone_digits or None,
            passwordHash=hash_password(password, self.settings.bcrypt_rounds),
            role=role,
        )
        try:
            created = self.users.create(user)
        except DuplicateKeyError:
            raise Conflict("Username already taken")
        logger.info("Registered %s %s", role, username)
        return self.issue_token(to_principal(created)), public_user(created)

    def login(self, identifier: str, password: str) -> Tuple[str, Dict[str, Any]]:
        parsed = classify_identifier(identifier)
        user = self.users.find(parsed)
        if user is None:
            verify_password(password, self._dummy())
            logger.info("Failed login by %s: no such account", parsed.kind.value)
            raise Unauthorized(INVALID_CREDENTIALS)
        if not verify_password(password, user.get("passwordHash", "")):
            logger.info("Failed login by %s: wrong password", parsed.kind.value)
            raise Unauthorized(INVALID_CREDENTIALS)
        return self.issue_token(to_principal(user)), public_user(user)

    def bootstrap_admin(self, username: str, password: str) -> Dict[str, Any]:
        """Create the admin account, or reset its password if it exists."""
        existing = self.users.collection.find_one({"username": username})
        password_hash = hash_password(password, self.settings.bcrypt_rounds)
        if existing:
            self.users.set_password(existing["_id"], password_hash, "admin")
            logger.info("Admin updated: %s", username)
            return public_user({**existing, "role": "admin"})
        created = self.users.create(User(username=username, passwordHash=password_hash, role="admin"))
        logger.info("Admin created: %s", username)
        return public_user(created)
