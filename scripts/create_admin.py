#!/usr/bin/env python3
"""
Brand Studio - Create Admin User
Creates an admin account for the admin panel.

Usage:
    python scripts/create_admin.py

Or with environment variables:
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=Secure-pass1 python scripts/create_admin.py
"""
import getpass
import os
import sys

# Add parent directory to path so we can import the app
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from app import create_app
from app.database import db
from app.models.db_models import DBUser, UserRole
from app.routes.auth import validate_password


def create_admin_user():
    app = create_app()

    with app.app_context():
        email = (os.environ.get('ADMIN_EMAIL') or input("Admin email: ")).strip().lower()
        if not email or '@' not in email:
            print("Error: Valid email required")
            return 1

        if DBUser.query.filter_by(email=email).first():
            print(f"Error: User with email {email} already exists")
            return 1

        password = os.environ.get('ADMIN_PASSWORD')
        if not password:
            password = getpass.getpass("Password: ")
            if password != getpass.getpass("Confirm password: "):
                print("Error: Passwords don't match")
                return 1

        is_valid, error_msg = validate_password(password)
        if not is_valid:
            print(f"Error: {error_msg}")
            return 1

        name = os.environ.get('ADMIN_NAME', 'Admin')
        db.session.add(DBUser(email=email, name=name, password=password, role=UserRole.ADMIN))
        db.session.commit()

        print(f"\n✅ Admin user created: {email}")
        print("   Login at: /admin\n")
        return 0


if __name__ == '__main__':
    sys.exit(create_admin_user())
