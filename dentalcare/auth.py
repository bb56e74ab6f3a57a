"""Staff accounts, the login session and role permissions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from passlib.context import CryptContext

from .models import ROLES, User, UserUpdate, new_id, utc_now
from .seed import DEFAULT_USERS
from .storage import KeyValueStore, PersistentSlot

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

USERS_KEY = "users"
SESSION_KEY = "current_user"

ACTIONS = ("add", "edit", "delete")
RESOURCES = ("patient", "dental", "user")

PERMISSIONS: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "super-admin": {
        "patient": ("add", "edit", "delete"),
        "dental": ("add", "edit", "delete"),
        "user": ("add", "edit", "delete"),
    },
    "doctor": {
        "patient": ("add", "edit", "delete"),
        "dental": ("add", "edit", "delete"),
        "user": (),
    },
    "administrator": {
        "patient": ("add", "edit"),
        "dental": (),
        "user": (),
    },
}

INVALID_CREDENTIALS = "Invalid username or password"
USERNAME_TAKEN = "Username already exists"


@dataclass(frozen=True)
class AuthResult:
    success: bool
    error: Optional[str] = None


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError):
        # unrecognised or corrupt hash
        return False


def _check_role(role: str) -> None:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")


class AuthStore:
    """Roster of staff users plus the currently logged-in identity.

    The session is a two-state machine: logged out (no marker stored) or
    logged in (the user's id stored under ``current_user``). A marker that
    points at a user who no longer exists reads as logged out.
    """

    def __init__(self, store: KeyValueStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.clock = clock
        self._users: PersistentSlot[List[User]] = PersistentSlot(
            store,
            USERS_KEY,
            [],
            decode=lambda raw: [User.from_dict(item) for item in raw],
            encode=lambda users: [user.to_dict() for user in users],
        )
        if not self._users.exists:
            self._users.seed(self._default_users())
        self._session: PersistentSlot[Optional[str]] = PersistentSlot(store, SESSION_KEY, None)

    def _default_users(self) -> List[User]:
        created = self.clock().isoformat()
        return [
            User(
                id=user_id,
                username=username,
                password_hash=get_password_hash(password),
                name=name,
                role=role,
                created_at=created,
            )
            for user_id, username, password, name, role in DEFAULT_USERS
        ]

    # ------------------------------------------------------------------

    @property
    def users(self) -> List[User]:
        return list(self._users.value)

    def get_user(self, user_id: str) -> Optional[User]:
        for user in self._users.value:
            if user.id == user_id:
                return user
        return None

    @property
    def current_user(self) -> Optional[User]:
        user_id = self._session.value
        if not user_id:
            return None
        return self.get_user(user_id)

    @property
    def is_authenticated(self) -> bool:
        return self.current_user is not None

    # ------------------------------------------------------------------

    def login(self, username: str, password: str) -> AuthResult:
        for user in self._users.value:
            if user.username == username and verify_password(password, user.password_hash):
                self._session.set(user.id)
                logger.info("User %r logged in", username)
                return AuthResult(success=True)
        logger.warning("Failed login attempt for %r", username)
        return AuthResult(success=False, error=INVALID_CREDENTIALS)

    def logout(self) -> None:
        self._session.set(None)

    def add_user(self, username: str, password: str, name: str, role: str) -> AuthResult:
        _check_role(role)
        if any(user.username == username for user in self._users.value):
            return AuthResult(success=False, error=USERNAME_TAKEN)
        user = User(
            id=new_id("user"),
            username=username,
            password_hash=get_password_hash(password),
            name=name,
            role=role,
            created_at=self.clock().isoformat(),
        )
        self._users.set(self._users.value + [user])
        return AuthResult(success=True)

    def update_user(self, user_id: str, updates: UserUpdate) -> None:
        """Merge ``updates`` into a user. Username uniqueness is not re-checked."""
        changes = updates.changes()
        if "role" in changes:
            _check_role(changes["role"])
        if "password" in changes:
            changes["password_hash"] = get_password_hash(changes.pop("password"))
        if self.get_user(user_id) is None:
            return
        self._users.set([
            replace(user, **changes) if user.id == user_id else user
            for user in self._users.value
        ])

    def delete_user(self, user_id: str) -> None:
        if user_id == self._session.value:
            logger.info("Refusing to delete the logged-in user %r", user_id)
            return
        remaining = [user for user in self._users.value if user.id != user_id]
        if len(remaining) != len(self._users.value):
            self._users.set(remaining)

    def can_perform_action(self, action: str, resource: str) -> bool:
        user = self.current_user
        if user is None:
            return False
        return action in PERMISSIONS.get(user.role, {}).get(resource, ())
