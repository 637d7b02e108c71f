import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.blitz.constants import DEFAULT_CATEGORIES, ROLE_ADMIN
from app.blitz.models import User
from app.blitz.modules.listings.models import Category
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed listing categories and the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@blitz.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///blitz.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        existing = {name for (name,) in s.query(Category.name).all()}
        for name in DEFAULT_CATEGORIES:
            if name not in existing:
                s.add(Category(name=name))

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            now = datetime.utcnow()
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                name="Administrator",
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
        user.role = ROLE_ADMIN
        user.is_verified = True

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
