from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from .db import create_db_and_tables, engine
from .dependencies import get_services
from .logging_config import configure_logging
from .routers import session_routers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # run once when app starts. Make DB tables and try the wallet.
    configure_logging()
    await create_db_and_tables()
    services = app.dependency_overrides.get(get_services, get_services)()
    if not await services.connect_wallet():
        logger.warning("wallet is not connected; submissions will be refused until it is")
    yield
    # no timer or in-flight submit may outlive the app
    await services.aclose()
    await engine.dispose()

app = FastAPI(lifespan=lifespan)


# NOTE: include the exact origins used by the frontend dev server (no trailing slash)
origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,  # which sites can call this API
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(session_routers.router, prefix="/api")
