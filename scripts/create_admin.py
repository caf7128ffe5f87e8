"""One-time bootstrap: create the tables, the system ledger accounts and a
system admin user.

Usage:
  python scripts/create_admin.py --username admin --email admin@example.com --password secret
Or provide via env: ADMIN_USERNAME, ADMIN_EMAIL, ADMIN_PASSWORD, ADMIN_NAME
"""
import os
import argparse
from getpass import getpass

from erp_core.app.main import init_database
from erp_core.app.db import SessionLocal
from erp_core.app.security import get_password_hash, validate_password
from erp_core.app import models


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--username')
    parser.add_argument('--email')
    parser.add_argument('--password')
    parser.add_argument('--name')
    args = parser.parse_args()

    username = args.username or os.getenv('ADMIN_USERNAME')
    email = args.email or os.getenv('ADMIN_EMAIL')
    password = args.password or os.getenv('ADMIN_PASSWORD')
    name = args.name or os.getenv('ADMIN_NAME') or 'Administrator'
    if not username:
        username = input('Username: ').strip()
    if not email:
        email = input('Email: ').strip()
    if not password:
        password = getpass('Password: ')

    problems = validate_password(password)
    if problems:
        parser.error('; '.join(problems))

    init_database()
    db = SessionLocal()
    try:
        existing = db.query(models.User).filter(models.User.username == username).first()
        if existing:
            print('User already exists:', username)
            return
        user = models.User(
            name=name,
            email=email,
            username=username,
            password_hash=get_password_hash(password),
            role='Admin',
            is_system_admin=True,
        )
        db.add(user)
        db.commit()
        print('Created admin user:', username)
    finally:
        db.close()


if __name__ == '__main__':
    main()
