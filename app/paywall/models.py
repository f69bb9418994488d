"""
DTO paywall: AuthContext, UserAccessRecord, OneTimeClaim (вход resolve_access),
AccessDecision (выход), ConsumptionResult (результат записи в ledger).
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


AccessType = Literal["subscription", "oneTime", "free"]


# ----- Кто делает запрос -----


class AuthContext(BaseModel):
    """Анонимный запрос (user_id/email = None) или идентифицированный пользователь."""

    user_id: str | None = None
    email: str | None = None

    model_config = {"frozen": True}

    @property
    def is_anonymous(self) -> bool:
        return not self.email

    @classmethod
    def anonymous(cls) -> AuthContext:
        return cls()


# ----- Срез пользователя, нужный для решения -----


class UserAccessRecord(BaseModel):
    """Подмножество User: план, статус, конец периода. Эффективный план считается при каждой проверке."""

    user_id: str
    subscription_plan: str = "free"
    subscription_status: str | None = None
    subscription_period_end: datetime | None = None

    model_config = {"frozen": True}


# ----- Заявка клиента на one-time доступ (непроверенная подсказка) -----


class OneTimeClaim(BaseModel):
    """X-One-Time-Access + X-Purchase-Id / cookie. Клиенту не доверяем: источник истины - ledger."""

    claimed: bool = False
    purchase_id: str | None = None

    model_config = {"frozen": True}


# ----- Решение доступа (чистая логика, без I/O) -----


class AccessDecision(BaseModel):
    """Результат resolve_access: ставить ли watermark и нужно ли списать one-time кредит после успеха."""

    has_watermark_free_access: bool = Field(
        ...,
        description="True = отдавать результат без watermark",
    )
    access_type: AccessType = Field(
        ...,
        description="Какой путь дал доступ: subscription / oneTime / free",
    )
    should_consume_credit: bool = Field(
        False,
        description="True только для oneTime: записать purchase_id в ledger после успешной операции",
    )
    is_paid_user: bool = False
    user_id: str | None = None

    model_config = {"frozen": True}


class ConsumptionResult(str, Enum):
    CONSUMED = "consumed"
    ALREADY_CONSUMED = "already_consumed"
    FAILED = "failed"
