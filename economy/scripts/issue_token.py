"""
Mirror a user locally and print a bearer token for it.

For local development only, where no identity provider is running:

    python -m economy.scripts.issue_token dev-user --admin
"""

import argparse
import asyncio

from economy.core.database import AsyncSessionLocal, engine
from economy.core.security import create_access_token
from economy.models.user import User, UserRole


async def issue_token(user_id: str, email: str = None, admin: bool = False) -> str:
    async with AsyncSessionLocal() as session:
        user = await session.get(User, user_id)
        if user is None:
            user = User(
                id=user_id,
                email=email or f"{user_id}@example.com",
                role=UserRole.ADMIN if admin else UserRole.USER,
                is_verified=True
            )
            session.add(user)
            await session.commit()
            print(f"User {user_id} created")
        else:
            print(f"User {user_id} already exists")

    return create_access_token({"sub": user_id})


async def main():
    parser = argparse.ArgumentParser(description="Issue a development access token")
    parser.add_argument("user_id")
    parser.add_argument("--email")
    parser.add_argument("--admin", action="store_true", help="Create the user as an admin")
    args = parser.parse_args()

    token = await issue_token(args.user_id, args.email, args.admin)
    await engine.dispose()
    print(f"Authorization: Bearer {token}")


if __name__ == "__main__":
    asyncio.run(main())
