from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory.

    Sessions do not commit automatically; the store layer handles
    commits and rollbacks.
    """
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
