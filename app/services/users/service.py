from datetime import datetime

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import User
from app.paywall.models import UserAccessRecord


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_or_create_user(self, email: str, name: str | None = None) -> User:
        email = email.strip().lower()
        user = self.get_by_email(email)
        if user:
            if name is not None and user.name != name:
                user.name = name
                self.db.add(user)
                self.db.commit()
                self.db.refresh(user)
            return user
        user = User(email=email, name=name)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError:
            # параллельная регистрация того же email
            self.db.rollback()
            return self.get_by_email(email)
        self.db.refresh(user)
        return user

    def get_by_id(self, user_id: str) -> User | None:
        return self.db.query(User).filter(User.id == user_id).one_or_none()

    def get_by_email(self, email: str) -> User | None:
        return self.db.query(User).filter(User.email == email.strip().lower()).one_or_none()

    def get_by_stripe_customer_id(self, customer_id: str) -> User | None:
        return self.db.query(User).filter(User.stripe_customer_id == customer_id).one_or_none()

    def get_by_stripe_subscription_id(self, subscription_id: str) -> User | None:
        return self.db.query(User).filter(User.stripe_subscription_id == subscription_id).one_or_none()

    def find_access_record(self, email: str) -> UserAccessRecord | None:
        """Срез для resolve_access; None - сессия без записи в БД."""
        user = self.get_by_email(email)
        if user is None:
            return None
        return UserAccessRecord(
            user_id=user.id,
            subscription_plan=user.subscription_plan or "free",
            subscription_status=user.subscription_status,
            subscription_period_end=user.subscription_current_period_end,
        )

    def update_subscription(
        self,
        user: User,
        *,
        plan: str | None = None,
        status: str | None = None,
        period_end: datetime | None = None,
        subscription_id: str | None = None,
        clear_subscription: bool = False,
    ) -> User:
        if plan is not None:
            user.subscription_plan = plan
        if status is not None:
            user.subscription_status = status
        if period_end is not None:
            user.subscription_current_period_end = period_end
        if subscription_id is not None:
            user.stripe_subscription_id = subscription_id
        if clear_subscription:
            user.stripe_subscription_id = None
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_stripe_customer(self, user: User, customer_id: str) -> User:
        user.stripe_customer_id = customer_id
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_admin(self, user: User, fields: dict) -> User:
        for key in ("role", "subscription_plan", "subscription_status", "subscription_current_period_end", "name"):
            if key in fields:
                setattr(user, key, fields[key])
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    def list_users(self, *, search: str | None = None, offset: int = 0, limit: int = 50) -> tuple[list[User], int]:
        q = self.db.query(User)
        if search:
            pattern = f"%{search.strip()}%"
            q = q.filter(or_(User.email.ilike(pattern), User.name.ilike(pattern)))
        total = q.count()
        items = q.order_by(User.created_at.desc()).offset(offset).limit(limit).all()
        return items, total
