from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import  AsyncSession
from storefront.db.connection import async_session

async def get_session() -> AsyncGenerator[AsyncSession,None]:
    # session closes at the end of the request, anything not committed is discarded
    async with async_session() as session:
        yield session
