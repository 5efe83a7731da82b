import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from expense_tracker.api.auth import router as auth_router
from expense_tracker.api.users import router as users_router
from expense_tracker.bootstrap import ensure_default_admin, sweep_expired_tokens
from expense_tracker.config import settings
from expense_tracker.database import engine, init_db

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    with Session(engine) as session:
        ensure_default_admin(session, settings)

    sweeper = None
    if settings.token_sweep_interval_seconds > 0:
        sweeper = asyncio.create_task(
            sweep_expired_tokens(engine, settings.token_sweep_interval_seconds)
        )
    yield
    if sweeper:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


app = FastAPI(title="Expense Tracker", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok"}
