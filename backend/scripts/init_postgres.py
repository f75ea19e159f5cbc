"""
Check the PostgreSQL database for Keep in Touch.
Run once before starting the app: python scripts/init_postgres.py

Requires: PostgreSQL installed and running. Create user and database:

  sudo -u postgres psql
  CREATE USER keepintouch WITH PASSWORD 'keepintouch';
  CREATE DATABASE keepintouch_db OWNER keepintouch;
  GRANT ALL PRIVILEGES ON DATABASE keepintouch_db TO keepintouch;
  \\q
"""

import sys

from sqlalchemy import create_engine, text
from keepintouch.config import settings


def main():
    url = settings.get_database_url()
    if not url.startswith("postgresql"):
        print("Database URL is not PostgreSQL. Skipping.")
        return
    try:
        engine = create_engine(url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            has_version_table = conn.execute(
                text("SELECT to_regclass('public.alembic_version')")
            ).scalar()
        print("PostgreSQL connection OK. Database exists.")
        if not has_version_table:
            print("No alembic_version table yet: apply migrations before starting the API.")
    except Exception as e:
        print(f"Cannot connect to PostgreSQL: {e}")
        print("\nCreate database first:")
        print("  psql -U postgres -c \"CREATE USER keepintouch WITH PASSWORD 'keepintouch';\"")
        print("  psql -U postgres -c \"CREATE DATABASE keepintouch_db OWNER keepintouch;\"")
        print("  psql -U postgres -c \"GRANT ALL PRIVILEGES ON DATABASE keepintouch_db TO keepintouch;\"")
        sys.exit(1)


if __name__ == "__main__":
    main()
