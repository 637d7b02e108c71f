"""
Release phase for the Blitz API: migrate, then seed.

- DATABASE_URL must be set; sqlite is refused when ENV=production.
- `alembic upgrade head` against that URL.
- Default categories + admin user (idempotent). Set SKIP_SEED=1 to skip.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _require_env(name: str) -> str:
    v = (os.environ.get(name) or "").strip()
    if not v:
        raise RuntimeError(f"Missing required environment variable {name}.")
    return v


def _migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def _seed(db_url: str) -> None:
    from scripts import init_db

    init_db.seed_only(database_url=db_url)


def run_release() -> None:
    db_url = _require_env("DATABASE_URL")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to release against sqlite in production. Set DATABASE_URL to Postgres.")

    print(f"[release] ENV={env or '(unset)'}", flush=True)
    print("[release] alembic upgrade head", flush=True)
    _migrate(db_url)

    if (os.environ.get("SKIP_SEED") or "").strip().lower() in ("1", "true", "yes"):
        print("[release] SKIP_SEED set; not seeding", flush=True)
    else:
        print("[release] seeding categories + admin", flush=True)
        _seed(db_url)
    print("[release] done", flush=True)


def main() -> None:
    run_release()


if __name__ == "__main__":
    main()
