"""Seed a demo set of purchase observations through the identity resolver.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import delete

# Make `app` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.session import SessionLocal
from app.identity import IdentityResolver, SqlAlchemyContactStore
from app.models.contact import Contact
from app.services.identify import build_identify_response


def build_demo_observations() -> list[tuple[str | None, str | None]]:
    """Return a deterministic sequence that exercises attach and merge."""

    return [
        ("lorraine@hillvalley.edu", "123456"),
        ("mcfly@hillvalley.edu", "123456"),
        ("george@hillvalley.edu", "919191"),
        ("biffsucks@hillvalley.edu", "717171"),
        ("george@hillvalley.edu", "717171"),
        (None, "123456"),
    ]


def reset_contacts() -> None:
    """Remove every contact row."""

    with SessionLocal() as db:
        db.execute(delete(Contact))
        db.commit()


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo contacts through the identity resolver.")
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete existing contacts before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo observations and print each consolidated response."""

    args = parse_args()
    if not args.no_reset:
        reset_contacts()

    resolver = IdentityResolver(SqlAlchemyContactStore(SessionLocal))
    print("Seed complete")
    for email, phone_number in build_demo_observations():
        identity = resolver.resolve(email, phone_number)
        response = build_identify_response(identity)
        print(f"email={email} phoneNumber={phone_number}")
        print(f"  {response.model_dump_json(by_alias=True)}")
    print()
    print("Inspect:")
    print("  POST /identify")
    print("  GET /contacts/{contact_id}/identity")


if __name__ == "__main__":
    main()
