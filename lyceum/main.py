from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from lyceum.core.config import settings
from lyceum.core.db import create_tables, engine, session_factory
from lyceum.core.errors import LyceumError
from lyceum.services.outbox import outbox
from lyceum.utils.exception_handlers import (
    general_exception_handler,
    http_exception_handler,
    lyceum_exception_handler,
    validation_exception_handler,
    value_error_handler,
)
from lyceum.utils.router_discovery import register_routers
from lyceum.utils.seed import seed_catalog


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncGenerator[None, FastAPI]:
    if settings.create_tables:
        await create_tables(engine)
    if settings.seed_catalog:
        async with session_factory() as db:
            await seed_catalog(db)
    outbox.start()

    yield

    await outbox.stop()
    await engine.dispose()


app = FastAPI(
    title="Lyceum API",
    lifespan=app_lifespan,
    servers=[{"url": "http://localhost:3011", "description": "Local server"}],
)


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


register_routers(app)

app.add_exception_handler(LyceumError, lyceum_exception_handler)
app.add_exception_handler(ValueError, value_error_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def healthz() -> str:
    return "OK"
