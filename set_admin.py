import asyncio
import sys

from backend.app.core.database import async_session
from backend.app.core.exceptions import ServiceError
from backend.app.services.users import UserService


async def make_admin(email: str, name: str):
    async with async_session() as session:
        users = UserService(session)
        user = await users.get_by_email(email)

        try:
            if user is None:
                # No account yet: create it with the admin role directly
                user = await users.create_user(name=name, email=email, roles=("admin",))
                print(f"User {email} created as admin (id={user.id}).")
            elif "admin" in await users.get_roles(user.id):
                print(f"User {email} is already an admin.")
                return
            else:
                await users.grant_role(user.id, "admin")
                print(f"Admin role granted to {email} (id={user.id}).")
        except ServiceError as e:
            await session.rollback()
            print(f"Failed: {e.message}", file=sys.stderr)
            sys.exit(1)

        await session.commit()
        print("Set PLATFORM_ADMIN_ID to this id to pin the fee recipient.")


if __name__ == "__main__":
    EMAIL = sys.argv[1] if len(sys.argv) > 1 else input("Admin email: ").strip()
    NAME = sys.argv[2] if len(sys.argv) > 2 else "Platform Admin"
    asyncio.run(make_admin(EMAIL, NAME))
