"""
Create or reset the scheduling database.

DANGEROUS with --reset: this deletes all card states and review history!

Usage:
    python -m scripts.reset_db            # create missing tables
    python -m scripts.reset_db --reset    # drop and recreate everything
"""

import sys

from srs_core.config import configure_logging, get_database_url
from srs_core.fsrs.database import get_engine, init_db, reset_db


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    configure_logging()
    engine = get_engine(get_database_url())

    if "--reset" not in argv:
        init_db(engine)
        print("✓ Scheduling tables ready.")
        return

    print("=" * 60)
    print("WARNING: Reset Scheduling Database")
    print("=" * 60)
    print()
    print("This will DELETE:")
    print("  - All card states (stability, difficulty, due dates)")
    print("  - All review logs (undo history)")
    print("  - All saved learner parameters and catalog entries")
    print()

    response = input("Are you sure you want to reset? (type 'yes' to confirm): ")

    if response.lower() == "yes":
        print("\nResetting database...")
        reset_db(engine)
        print("✓ Database reset complete!")
    else:
        print("\nCancelled. No changes made.")


if __name__ == "__main__":
    main()
