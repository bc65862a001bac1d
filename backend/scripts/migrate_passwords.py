"""
Hash any password still stored as plaintext.

Run once after importing legacy user records: python scripts/migrate_passwords.py
Safe to re-run; already hashed passwords are left alone.
"""

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from voice_control.core.database import SessionLocal
from voice_control.core.security import get_password_hash, is_password_hash
from voice_control.models.user import User


def migrate_passwords(db) -> int:
    """Returns the number of users whose password was hashed"""
    migrated = 0
    for user in db.query(User).all():
        if is_password_hash(user.password_hash):
            continue
        try:
            user.password_hash = get_password_hash(user.password_hash)
        except ValueError as exc:
            print(f"  skipped {user.username}: {exc}")
            continue
        migrated += 1
        print(f"  migrated {user.username}")
    db.commit()
    return migrated


def main():
    db = SessionLocal()
    try:
        print("Starting password migration...")
        migrated = migrate_passwords(db)
        if migrated == 0:
            print("No users need password migration")
        else:
            print(f"Migrated {migrated} password(s)")
    finally:
        db.close()


if __name__ == "__main__":
    main()
