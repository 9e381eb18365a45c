#!/usr/bin/env python3
"""
Grant the admin role to a registered user.
Run from the project root: python -m scripts.grant_admin user@example.com
or: PYTHONPATH=. python scripts/grant_admin.py user@example.com
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.session import SessionLocal
from app.models.user_role import ROLE_ADMIN
from app.services.audit.service import AuditService
from app.services.users.service import UserService


def main():
    if len(sys.argv) != 2:
        print("Usage: python -m scripts.grant_admin <email>")
        sys.exit(2)
    email = sys.argv[1]
    db = SessionLocal()
    try:
        service = UserService(db)
        user = service.get_by_email(email)
        if not user:
            print(f"No user with email {email}. Register first via POST /auth/register.")
            sys.exit(1)
        service.set_role(user.id, ROLE_ADMIN)
        AuditService(db).log("system", None, "user_role_changed", "user", user.id, {"role": ROLE_ADMIN})
        print(f"{email} is now an admin.")
    finally:
        db.close()


if __name__ == "__main__":
    main()
