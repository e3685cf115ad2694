import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from project_console.core.database import engine, Base
from project_console.core.engine.client import close_remote_store
from project_console.api.router import api_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# Create local tables on startup; release the remote client and the engine on shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Local tables ready")

    yield
    await close_remote_store()
    await engine.dispose()


app = FastAPI(title="Project Console API", lifespan=lifespan)

# Include the master router containing all our endpoints
app.include_router(api_router)


@app.get("/")
async def root():
    return {"message": "Welcome to the Project Console API"}
