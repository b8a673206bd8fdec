"""
PostgreSQL database setup script for CookPlan.
Run this once before starting the API for the first time.
"""
import os
import subprocess
import sys

from dotenv import load_dotenv

load_dotenv()

DB_USER = os.getenv("DB_USER", "cookplan")
DB_PASSWORD = os.getenv("DB_PASSWORD", "password")
DB_NAME = os.getenv("DB_NAME", "cookplan")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")


def psql(*args, database=None):
    cmd = ['psql', '-U', 'postgres', '-h', DB_HOST, '-p', DB_PORT]
    if database:
        cmd += ['-d', database]
    return subprocess.run(cmd + list(args), check=False, capture_output=True, text=True)


def upgrade_schema():
    """Bring the schema to the latest alembic revision."""
    from alembic import command
    from alembic.config import Config

    cfg = Config(os.path.join(os.path.dirname(os.path.abspath(__file__)), "alembic.ini"))
    cfg.attributes["sqlalchemy.url"] = (
        f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )
    command.upgrade(cfg, "head")


def setup_database():
    print("CookPlan PostgreSQL Setup")
    print("=" * 50)

    print("\n1. Checking PostgreSQL installation...")
    try:
        result = subprocess.run(['psql', '--version'], capture_output=True, text=True)
        print(f"   ✓ {result.stdout.strip()}")
    except FileNotFoundError:
        print("   ✗ PostgreSQL not found. Please install PostgreSQL first.")
        sys.exit(1)

    print("\n2. Creating database user...")
    psql('-c', f"CREATE USER {DB_USER} WITH PASSWORD '{DB_PASSWORD}';")
    print(f"   ✓ User '{DB_USER}' created (or already exists)")

    print("\n3. Creating database...")
    psql('-c', f"CREATE DATABASE {DB_NAME} OWNER {DB_USER};")
    print(f"   ✓ Database '{DB_NAME}' created (or already exists)")

    print("\n4. Granting privileges...")
    psql('-c', f"GRANT ALL PRIVILEGES ON DATABASE {DB_NAME} TO {DB_USER};", database=DB_NAME)
    print(f"   ✓ Privileges granted to '{DB_USER}'")

    print("\n5. Applying migrations...")
    try:
        upgrade_schema()
        print("   ✓ Schema is at the latest revision")
    except Exception as e:
        print(f"   ✗ Migration failed: {e}")
        sys.exit(1)

    print("\n" + "=" * 50)
    print("✓ Setup complete!")
    print(f"\nDatabase: {DB_NAME}  User: {DB_USER}  Host: {DB_HOST}:{DB_PORT}")
    print("\nYou can now run: python -m uvicorn api:app --reload")


if __name__ == "__main__":
    setup_database()
