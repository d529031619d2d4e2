"""
Create (or promote) a system admin account.

Usage:
    python scripts/create_admin_user.py --email admin@example.com --password secret --name "Admin"
"""
import sys
import os
import argparse

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from budget_hub.auth.security import get_password_hash
from budget_hub.db import SessionLocal
from budget_hub.models.models import User
from budget_hub.services.roles import SystemRole


def create_admin_user(email: str, password: str, full_name: str, department: str = None) -> None:
    db = SessionLocal()
    try:
        email = email.lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = SystemRole.ADMIN.value
            user.is_active = True
            user.password_hash = get_password_hash(password)
            print(f"Existing user {email} promoted to admin")
        else:
            user = User(
                email=email,
                password_hash=get_password_hash(password),
                full_name=full_name,
                department=department,
                role=SystemRole.ADMIN.value,
            )
            db.add(user)
            print(f"Admin user {email} created")
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or promote a system admin")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--name", default="Administrator", help="Full name for a new account")
    parser.add_argument("--department", default=None)
    args = parser.parse_args()

    create_admin_user(args.email, args.password, args.name, args.department)
