#!/usr/bin/env python3
"""
Seed default settings, email templates and (optionally) an admin account

    python seed_defaults.py
    python seed_defaults.py --admin-email ops@example.com --admin-password '...'
"""

import argparse

from taxibook import models  # noqa: F401
from taxibook.database import Base, SessionLocal, engine
from taxibook.email_templates import DEFAULT_EMAIL_TEMPLATES
from taxibook.models import EmailTemplate, User
from taxibook.security_utils import hash_password
from taxibook.services.settings_service import SettingsService


def seed_templates(db) -> int:
    created = 0
    for data in DEFAULT_EMAIL_TEMPLATES:
        if db.query(EmailTemplate).filter(EmailTemplate.slug == data["slug"]).first():
            print(f"   ⏭️  {data['slug']} already exists")
            continue
        db.add(EmailTemplate(**data))
        created += 1
        print(f"   ✅ {data['slug']}")
    db.commit()
    return created


def seed_admin(db, email: str, password: str) -> None:
    user = db.query(User).filter(User.email == email.lower()).first()
    if user is None:
        user = User(email=email.lower(), name="Administrator")
        db.add(user)
    user.is_admin = True
    user.hashed_password = hash_password(password)
    db.commit()
    print(f"   ✅ Admin account ready: {user.email}")


def main():
    parser = argparse.ArgumentParser(description="Seed TaxiBook defaults")
    parser.add_argument("--admin-email")
    parser.add_argument("--admin-password")
    args = parser.parse_args()

    Base.metadata.create_all(bind=engine, checkfirst=True)

    db = SessionLocal()
    try:
        print("🔍 Seeding settings...")
        settings_created = SettingsService(db).seed_defaults()
        print(f"   {settings_created} settings created")

        print("\n📧 Seeding email templates...")
        templates_created = seed_templates(db)
        print(f"   {templates_created} templates created")

        if args.admin_email and args.admin_password:
            print("\n🔐 Seeding admin account...")
            seed_admin(db, args.admin_email, args.admin_password)

        print("\n✅ Done")
    except Exception as e:
        print(f"\n❌ Seeding failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
