from sqlmodel import SQLModel
from oversight.db.session import engine
from . import user, user_session, notification, audit_log # Import all models

async def create_db_and_tables():
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
