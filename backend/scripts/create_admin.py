"""
Create the admin account, or report on the existing one.

Run once after migrations: python scripts/create_admin.py

Uses ADMIN_USERNAME / ADMIN_PASSWORD / ADMIN_EMAIL from the environment.
If the stored admin password is still plaintext it is re-hashed in place.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from voice_control.config import settings
from voice_control.core.database import SessionLocal
from voice_control.core.security import get_password_hash, is_password_hash
from voice_control.services.user_service import user_service


def main():
    db = SessionLocal()
    try:
        existing = user_service.get_user_by_username(db, settings.ADMIN_USERNAME)
        if existing is None:
            admin = user_service.ensure_admin(
                db, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD, settings.ADMIN_EMAIL
            )
            print(f"Created admin user: {admin.username} <{admin.email}>")
            return

        print("Admin user already exists:")
        print(f"  username:   {existing.username}")
        print(f"  email:      {existing.email}")
        print(f"  role:       {existing.role}")
        print(f"  active:     {existing.is_active}")
        print(f"  created_at: {existing.created_at}")

        if is_password_hash(existing.password_hash):
            print("Admin password is already hashed")
        else:
            # Legacy records stored the plaintext; hash what was stored.
            existing.password_hash = get_password_hash(existing.password_hash)
            db.commit()
            print("Admin password updated to hashed version")
    finally:
        db.close()


if __name__ == "__main__":
    main()
