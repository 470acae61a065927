"""
Create the MailPack database schema.

Connects through the Cloud SQL Python Connector (IAM auth) when
INSTANCE_CONNECTION_NAME is set, otherwise through DATABASE_URL (defaults to
a local SQLite file). Existing tables are left untouched.
"""

import sys

from dotenv import load_dotenv
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from mailpack.db import DatabaseConnection
from mailpack.db.tables import metadata

# Load environment variables
load_dotenv()


def main():
    """Main entry point for schema creation."""
    print("🚀 MailPack Schema Setup")
    print("=" * 50)

    try:
        DatabaseConnection.initialize()
        engine = DatabaseConnection.get_engine()
        print(f"✅ Connected to {engine.url.render_as_string(hide_password=True)}")

        existing = set(inspect(engine).get_table_names())
        missing = [name for name in metadata.tables if name not in existing]

        if not missing:
            print("✅ Schema is up to date")
            return

        print(f"📋 Creating {len(missing)} table(s): {', '.join(missing)}")
        DatabaseConnection.create_schema()
        print("✅ Schema created")
    except (SQLAlchemyError, ValueError) as e:
        print(f"❌ Schema setup failed: {e}")
        sys.exit(1)
    finally:
        DatabaseConnection.close()


if __name__ == "__main__":
    main()
