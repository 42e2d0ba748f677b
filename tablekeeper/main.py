import asyncio
import logging

from fastapi import FastAPI
from contextlib import asynccontextmanager
from tablekeeper.db.init_db import create_database
from tablekeeper.db.base import Base
from tablekeeper.db.session import engine, SessionLocal
from tablekeeper.core.config import settings
from tablekeeper.core.errors import register_exception_handlers
from tablekeeper.api.v1.router import api_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def _lock_sweep_loop() -> None:
    """Background task: drop expired database booking locks."""
    from tablekeeper.utils.timeslots import release_expired_locks

    while True:
        try:
            db = SessionLocal()
            try:
                count = release_expired_locks(db)
                if count:
                    logger.info("Released %d expired booking lock(s).", count)
            finally:
                db.close()
        except Exception:
            logger.exception("Error during booking lock sweep.")
        await asyncio.sleep(settings.LOCK_SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: Ensure DB exists and create tables
    create_database()
    Base.metadata.create_all(bind=engine)

    # Redis locks expire on their own; only the database store needs sweeping
    sweep_task = None
    if settings.LOCK_BACKEND == "database":
        sweep_task = asyncio.create_task(_lock_sweep_loop())
    yield

    # Shutdown: cancel background task
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


from fastapi.middleware.cors import CORSMiddleware

app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

# Set all CORS enabled origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
def read_root():
    return {"service": settings.PROJECT_NAME}
