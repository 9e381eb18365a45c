import logging
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.profile import Profile
from app.models.purchase import Purchase
from app.models.support_ticket import SupportTicket
from app.models.task_progress import TaskProgress
from app.models.user import User
from app.models.user_role import ROLE_ADMIN, ROLE_USER, ROLES, UserRole

logger = logging.getLogger(__name__)


class EmailAlreadyRegistered(Exception):
    pass


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> User | None:
        return self.db.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email.strip().lower()).one_or_none()

    def get_profile(self, user_id: str) -> Profile | None:
        return self.db.query(Profile).filter(Profile.user_id == user_id).one_or_none()

    def register(self, email: str, hashed_password: str, full_name: str) -> User:
        email = email.strip().lower()
        if self.get_by_email(email):
            raise EmailAlreadyRegistered(email)
        user = User(email=email, hashed_password=hashed_password)
        self.db.add(user)
        self.db.flush()
        self.db.add(Profile(user_id=user.id, email=email, full_name=full_name.strip()))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise EmailAlreadyRegistered(email) from e
        self.db.refresh(user)
        logger.info("user_registered", extra={"user_id": user.id})
        return user

    def touch_login(self, user: User) -> None:
        user.last_login_at = datetime.now(timezone.utc)
        self.db.add(user)
        self.db.commit()

    def update_profile(self, user: User, **fields) -> Profile:
        """Only non-None fields are written; registration completes once phone is set."""
        profile = self.get_profile(user.id)
        if profile is None:
            profile = Profile(user_id=user.id, email=user.email)
        for key, value in fields.items():
            if value is not None:
                setattr(profile, key, value)
        profile.is_registration_complete = bool(profile.full_name and profile.phone_number)
        self.db.add(profile)
        self.db.commit()
        self.db.refresh(profile)
        return profile

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_role(self, user_id: str) -> str:
        """Highest role of the user; no row = plain user."""
        roles = {r for (r,) in self.db.query(UserRole.role).filter(UserRole.user_id == user_id).all()}
        for role in ROLES:
            if role in roles:
                return role
        return ROLE_USER

    def is_admin(self, user_id: str) -> bool:
        return (
            self.db.query(UserRole)
            .filter(UserRole.user_id == user_id, UserRole.role == ROLE_ADMIN)
            .first()
            is not None
        )

    def set_role(self, user_id: str, role: str) -> None:
        """Replace the user's roles with a single role (no row for plain users)."""
        if role not in ROLES:
            raise ValueError(f"unknown role: {role}")
        self.db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
        if role != ROLE_USER:
            self.db.add(UserRole(user_id=user_id, role=role))
        self.db.commit()

    def list_with_profiles(self) -> list[tuple[User, Profile | None, str]]:
        rows = (
            self.db.query(User, Profile)
            .outerjoin(Profile, Profile.user_id == User.id)
            .order_by(User.created_at.desc())
            .all()
        )
        role_rows = self.db.query(UserRole.user_id, UserRole.role).all()
        roles: dict[str, set[str]] = {}
        for uid, role in role_rows:
            roles.setdefault(uid, set()).add(role)
        result = []
        for user, profile in rows:
            user_roles = roles.get(user.id, set())
            role = next((r for r in ROLES if r in user_roles), ROLE_USER)
            result.append((user, profile, role))
        return result

    def delete_user(self, user_id: str) -> None:
        """
        Remove the account and its program data. Orders and tickets are kept
        (financial/support history) with user_id detached.
        """
        self.db.query(TaskProgress).filter(TaskProgress.user_id == user_id).delete(synchronize_session=False)
        self.db.execute(
            update(Order).where(Order.user_id == user_id).values(user_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(
            update(SupportTicket).where(SupportTicket.user_id == user_id).values(user_id=None)
            .execution_options(synchronize_session=False)
        )
        self.db.query(Purchase).filter(Purchase.user_id == user_id).delete(synchronize_session=False)
        self.db.query(UserRole).filter(UserRole.user_id == user_id).delete(synchronize_session=False)
        self.db.query(Profile).filter(Profile.user_id == user_id).delete(synchronize_session=False)
        self.db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        self.db.commit()
        logger.info("user_deleted", extra={"user_id": user_id})
