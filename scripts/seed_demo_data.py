#!/usr/bin/env python3
"""
Company Portal demo data seed.

Usage:
    python scripts/seed_demo_data.py              # add missing demo rows
    python scripts/seed_demo_data.py --reset      # drop & recreate tables first
"""

import argparse
import sys

sys.path.insert(0, ".")

from portal import create_app
from portal.models import db
from portal.services.demo_seed import seed_demo_data


def main():
    parser = argparse.ArgumentParser(description="Seed demo collaborators and workflow definitions")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
        created = seed_demo_data()
    print(f"Seeded: {created}")


if __name__ == "__main__":
    main()
