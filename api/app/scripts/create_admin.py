"""
Create the first administrator account.

    docker exec apartments-api-1 bash -c \\
        "export PYTHONPATH=/app && python -m app.scripts.create_admin admin@example.com"

The password is read from the ADMIN_PASSWORD environment variable or prompted
for. Pass --create-tables on a fresh development database to create the schema
first; production schemas are managed outside this service.
"""
import argparse
import asyncio
import getpass
import logging
import os
import sys

from app.core.database import Base, SessionLocal, engine
from app.core.errors import Conflict
from app.models import billing, household, user  # noqa: F401  (register tables)
from app.services import accounts

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("create_admin")


async def run(email: str, password: str, create_tables: bool) -> int:
    if create_tables:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created (existing tables left untouched)")

    async with SessionLocal() as db:
        try:
            account = await accounts.create_admin(db, email, password)
        except Conflict as exc:
            logger.error("%s", exc.message)
            return 1
        await db.commit()

    logger.info("Administrator %s created (account id %d)", email, account.id)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("email")
    parser.add_argument("--create-tables", action="store_true")
    args = parser.parse_args()

    password = os.environ.get("ADMIN_PASSWORD") or getpass.getpass("Password: ")
    if len(password) < 8:
        logger.error("Password must be at least 8 characters")
        sys.exit(2)

    code = asyncio.run(run(args.email, password, args.create_tables))
    sys.exit(code)


if __name__ == "__main__":
    main()
