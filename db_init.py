# db_init.py
import argparse
from pathlib import Path

from sqlalchemy import func, select

from config import Config
from models import Base, make_engine, make_session_factory


def init_db(db_url: str, *, reset: bool = False) -> dict[str, int]:
    """Create (or with reset=True, drop and recreate) the tables. Returns row counts per table."""
    if db_url.startswith("sqlite"):
        Path("instance").mkdir(parents=True, exist_ok=True)
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(db_url, echo=Config.SQLALCHEMY_ECHO)
    if reset:
        Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)

    SessionLocal = make_session_factory(engine)
    with SessionLocal() as s:
        counts = {
            table.name: s.execute(select(func.count()).select_from(table)).scalar_one()
            for table in Base.metadata.sorted_tables
        }
    engine.dispose()
    return counts


def main():
    parser = argparse.ArgumentParser(description="Create the job tables and the receipt exports folder.")
    parser.add_argument("--reset", action="store_true", help="Drop every table first (all stored jobs are lost).")
    args = parser.parse_args()

    counts = init_db(Config.SQLALCHEMY_DATABASE_URI, reset=args.reset)

    print("Database reset." if args.reset else "Database initialized.")
    print(f"DB: {Config.SQLALCHEMY_DATABASE_URI}")
    print(f"Exports dir: {Config.EXPORTS_DIR}")
    for name, n in counts.items():
        print(f"  {name}: {n} rows")


if __name__ == "__main__":
    main()
