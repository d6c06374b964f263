"""
Create a user with a role (e.g. the first administrator). Run from project root:
  python -m finance_app.scripts.create_user EMAIL PASSWORD FULL_NAME [ROLE]
Example:
  python -m finance_app.scripts.create_user admin@example.com your-secure-password "Admin" SUPER_ADMIN
"""
import argparse
import asyncio
import logging
import sys
import time

from dotenv import load_dotenv

from finance_app.core.config import get_settings
from finance_app.core.database import (
    create_engine_from_settings,
    create_session_factory,
    unit_of_work,
)
from finance_app.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN, PasswordHasher
from finance_app.models import User
from finance_app.repositories import UserRepository
from finance_app.services.auth import normalize_email
from finance_app.services.permissions import SYSTEM_ROLES, RoleResolver, ensure_system_roles

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logging.Formatter.converter = time.gmtime
logger = logging.getLogger(__name__)


async def create_user(email: str, password: str, full_name: str, role_code: str) -> int:
    settings = get_settings()
    engine = create_engine_from_settings(settings)
    factory = create_session_factory(engine)
    try:
        async with factory() as session:
            async with unit_of_work(session):
                await ensure_system_roles(session)
                users = UserRepository(session)
                if await users.email_exists(email):
                    print(f"User '{email}' already exists.", file=sys.stderr)
                    return 1
                hasher = PasswordHasher(settings.BCRYPT_ROUNDS)
                user = await users.add(
                    User(
                        login=email,
                        email=email,
                        password_hash=hasher.hash(password),
                        full_name=full_name,
                        is_active=True,
                        is_verified=True,
                    )
                )
                if not await RoleResolver(session).assign_role(user.id, role_code, assigned_by=None):
                    raise RuntimeError(f"Could not assign role {role_code}")
        print(f"Created user '{email}' with role '{role_code}'.")
        return 0
    finally:
        await engine.dispose()


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Create a Finance App user with a role.")
    parser.add_argument("email", help="Email (also the login)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("full_name", help="Display name")
    parser.add_argument(
        "role",
        nargs="?",
        default="USER",
        choices=[spec["code"] for spec in SYSTEM_ROLES],
    )
    args = parser.parse_args()

    email = normalize_email(args.email)
    if not email or "@" not in email or len(email) > 255:
        print("Invalid email.", file=sys.stderr)
        return 1
    if not (PASSWORD_MIN_LEN <= len(args.password) <= PASSWORD_MAX_LEN):
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    try:
        return asyncio.run(create_user(email, args.password, args.full_name.strip(), args.role))
    except Exception as e:
        logger.exception("Creating user failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
