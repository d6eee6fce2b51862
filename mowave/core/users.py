"""
User accounts and authentication.

Passwords are hashed with bcrypt (inputs truncated to bcrypt's 72-byte
limit); access tokens are HS256 JWTs carrying the user id and role.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

import bcrypt
import jwt
import structlog

from mowave.config import Settings
from mowave.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from mowave.database.models import Role, User, UserPatch, utcnow
from mowave.database.store import Store

logger = structlog.get_logger(__name__)

BCRYPT_MAX_BYTES = 72


def normalize_email(email: Optional[str]) -> str:
    """Emails are stored and looked up lowercased, without surrounding spaces."""
    return (email or "").strip().lower()


def _to_bcrypt_secret(password: str) -> bytes:
    """bcrypt only uses the first 72 bytes of the password."""
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class UserService:
    """Account management and token issuing."""

    def __init__(self, store: Store, settings: Settings):
        self.store = store
        self.settings = settings

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        return bcrypt.hashpw(_to_bcrypt_secret(password), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(_to_bcrypt_secret(password), password_hash.encode("utf-8"))
        except ValueError:
            return False

    def ensure_default_admin(self) -> User:
        """Create the configured admin account unless it already exists."""
        email = normalize_email(self.settings.default_admin_email)
        existing = self.store.get_user_by_email(email)
        if existing:
            return existing
        user = self.store.create_user(
            email=email,
            password_hash=self.hash_password(self.settings.default_admin_password),
            role=Role.ADMIN,
        )
        logger.info("default_admin_created", user_id=user.id, email=user.email)
        return user

    def get_user(self, user_id: str) -> User:
        user = self.store.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found", user_id=user_id)
        return user

    def create_user(self, email: str, password: str, role: Role | str = Role.USER) -> User:
        """
        Create an account.

        Raises:
            ValidationError: Missing fields, unknown role or duplicate email
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError("Role must be admin or user", role=role)
        if self.store.get_user_by_email(email):
            raise ValidationError("User already exists", email=email)

        user = self.store.create_user(email, self.hash_password(password), role)
        logger.info("user_created", user_id=user.id, role=role.value)
        return user

    def update_user(
        self,
        user_id: str,
        acting_user_id: str,
        email: Optional[str] = None,
        role: Optional[Role | str] = None,
        is_active: Optional[bool] = None,
        password: Optional[str] = None,
    ) -> User:
        """
        Update an account. Admins cannot deactivate themselves.

        Raises:
            NotFoundError: Unknown user
            ValidationError: Self-deactivation, unknown role or email taken
        """
        user = self.get_user(user_id)
        if user_id == acting_user_id and is_active is False:
            raise ValidationError("Cannot deactivate your own account")

        patch = UserPatch()
        if email is not None:
            email = normalize_email(email)
            if not email:
                raise ValidationError("Email cannot be empty")
        if email is not None and email != user.email:
            if self.store.get_user_by_email(email):
                raise ValidationError("User already exists", email=email)
            patch.email = email
        if role is not None:
            try:
                patch.role = Role(role)
            except ValueError:
                raise ValidationError("Role must be admin or user", role=role)
        if is_active is not None:
            patch.is_active = is_active
        if password:
            patch.password_hash = self.hash_password(password)

        updated = self.store.update_user(user_id, patch)
        logger.info("user_updated", user_id=user_id)
        return updated

    def delete_user(self, user_id: str, acting_user_id: str) -> None:
        self.get_user(user_id)
        if user_id == acting_user_id:
            raise ValidationError("Cannot delete your own account")
        self.store.delete_user(user_id)
        logger.info("user_deleted", user_id=user_id)

    def list_users(
        self,
        role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[User]:
        """Users matching the filters, newest first."""
        users = self.store.get_all_users()
        if role:
            users = [u for u in users if u.role == role]
        if status:
            is_active = status == "active"
            users = [u for u in users if u.is_active == is_active]
        if search:
            needle = search.lower()
            users = [u for u in users if needle in u.email.lower() or needle in u.id.lower()]
        users.sort(key=lambda u: u.created_at, reverse=True)
        return users

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def issue_token(self, user: User) -> str:
        # PyJWT checks exp against wall-clock time
        now = utcnow()
        claims = {
            "sub": user.id,
            "role": user.role.value,
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.jwt_expire_minutes),
        }
        return jwt.encode(
            claims, self.settings.jwt_secret_key, algorithm=self.settings.jwt_algorithm
        )

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        """
        Check credentials and issue an access token.

        Raises:
            ValidationError: Missing credentials
            AuthenticationError: Unknown email, wrong password or inactive account
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Email and password are required")

        user = self.store.get_user_by_email(email)
        if user is None or not self.verify_password(password, user.password_hash):
            logger.warning("login_failed", email=email)
            raise AuthenticationError("Invalid credentials")
        if not user.is_active:
            logger.warning("login_inactive_user", user_id=user.id)
            raise AuthenticationError("Account is deactivated")

        logger.info("login_succeeded", user_id=user.id)
        return {
            "access_token": self.issue_token(user),
            "token_type": "bearer",
            "expires_in": self.settings.jwt_expire_minutes * 60,
            "user": user.to_public_dict(),
        }

    def decode_token(self, token: str) -> User:
        """
        Resolve a bearer token to an active user.

        Raises:
            AuthenticationError: Invalid or expired token, unknown or inactive user
        """
        try:
            claims = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("Token has expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("Invalid token")

        user = self.store.get_user_by_id(claims.get("sub", ""))
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid token")
        return user
