#!/usr/bin/env python3
"""Create a TokenVault user directly in the database.

Use this to bootstrap the first administrator; users are otherwise
managed outside this service.

Usage:
    python scripts/create_user.py --email admin@example.com --role ADMIN
    TOKENVAULT_PASSWORD=... python scripts/create_user.py --email ops@example.com

The password is read from --password, then $TOKENVAULT_PASSWORD, then
prompted for interactively.
"""

import argparse
import asyncio
import getpass
import os
import sys

from tokenvault.core.config import settings
from tokenvault.core.database import async_session_maker, engine
from tokenvault.models.user import Role
from tokenvault.services.auth import password_policy_violations
from tokenvault.services.credentials import CredentialVerifier
from tokenvault.services.errors import TokenVaultError
from tokenvault.services.identity import SqlIdentityStore, normalize_identifier


async def create_user(email: str, password: str, role: Role, inactive: bool) -> str:
    verifier = CredentialVerifier.from_settings(settings)
    hashed = await verifier.hash(password)

    async with async_session_maker() as db:
        store = SqlIdentityStore(db, timeout=settings.registry_timeout_seconds)
        user = await store.create_user(
            email=email,
            password_hash=hashed.hash,
            role=role,
            is_active=not inactive,
        )
    await engine.dispose()
    return str(user.id)


def main():
    parser = argparse.ArgumentParser(description="Create a TokenVault user")
    parser.add_argument("--email", required=True, help="Login identifier")
    parser.add_argument("--password", help="Password (prefer $TOKENVAULT_PASSWORD or the prompt)")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.USER.value,
        help="Role carried in access tokens",
    )
    parser.add_argument("--inactive", action="store_true", help="Create the user disabled")
    args = parser.parse_args()

    email = normalize_identifier(args.email)
    if "@" not in email:
        print(f"ERROR: {args.email!r} is not an email address.")
        sys.exit(1)

    password = args.password or os.environ.get("TOKENVAULT_PASSWORD")
    if not password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("ERROR: Passwords do not match.")
            sys.exit(1)

    problems = password_policy_violations(password)
    if problems:
        print(f"ERROR: Password {'; '.join(problems)}.")
        sys.exit(1)

    try:
        user_id = asyncio.run(create_user(email, password, Role(args.role), args.inactive))
    except TokenVaultError as e:
        print(f"ERROR: {e.message}")
        sys.exit(1)

    print(f"Created {args.role} user {email} ({user_id})")


if __name__ == "__main__":
    main()
