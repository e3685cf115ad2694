from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from project_console.core.config import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False)

# expire_on_commit=False so objects stay readable after commit in async code
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)


# Request-scoped session for routes
async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


# Every model registers its table on Base.metadata
class Base(DeclarativeBase):
    pass
