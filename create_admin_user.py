import asyncio
import sys
from sqlmodel import select, or_
from oversight.db.session import async_session_factory
from oversight.models import create_db_and_tables
from oversight.models.user import User, UserRole
from oversight.core.security import get_password_hash

async def create_admin_user(email: str, username: str, password: str):
    await create_db_and_tables()

    async with async_session_factory() as session:
        # Check if user already exists
        statement = select(User).where(or_(User.email == email, User.username == username))
        result = await session.exec(statement)
        user = result.first()

        if user:
            print(f"User {user.email} already exists.")
            if user.role != UserRole.SUPER_ADMIN:
                user.role = UserRole.SUPER_ADMIN
                session.add(user)
                await session.commit()
                print(f"User {user.email} updated to Super Admin.")
            else:
                print(f"User {user.email} is already a Super Admin.")
            return

        new_superuser = User(
            email=email,
            username=username,
            full_name="Super Admin",
            hashed_password=get_password_hash(password),
            is_active=True,
            role=UserRole.SUPER_ADMIN
        )
        session.add(new_superuser)
        await session.commit()
        await session.refresh(new_superuser)
        print(f"Super Admin '{email}' created successfully.")

if __name__ == "__main__":
    if sys.platform == 'win32':
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    admin_email = input("Enter Super Admin email: ").strip().lower()
    admin_username = input("Enter Super Admin username: ").strip()
    admin_password = input("Enter Super Admin password: ")

    asyncio.run(create_admin_user(admin_email, admin_username, admin_password))
    print("Script finished.")
