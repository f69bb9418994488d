#!/usr/bin/env python3
"""
Выдать пользователю роль ADMIN и напечатать session token.
Запуск из корня проекта: python -m scripts.make_admin user@example.com
или: PYTHONPATH=. python scripts/make_admin.py user@example.com
"""
import os
import sys

# корень проекта в PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.init_db import init_db
from app.db.session import SessionLocal
from app.services.audit.service import AuditService
from app.services.auth.session import create_session_token
from app.services.users.service import UserService


def main():
    if len(sys.argv) < 2:
        print("Usage: make_admin.py <email>")
        sys.exit(1)
    email = sys.argv[1].strip()
    init_db()
    db = SessionLocal()
    try:
        users = UserService(db)
        user = users.get_or_create_user(email)
        if not user.is_admin():
            user = users.update_admin(user, {"role": "ADMIN"})
            AuditService(db).log("admin", None, "user_promoted", "user", user.id, {"role": "ADMIN"})
        print(f"{user.email} -> ADMIN (id={user.id})\n")
        print(f"Authorization: Bearer {create_session_token(user.id, user.email)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
