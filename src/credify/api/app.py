# src/credify/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and owns the runtime lifecycle: the
location monitor starts with the app and is stopped (subscription released,
in-flight lookups cancelled) on shutdown. Endpoints live in `credify.api.routes`.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from credify.core.logging import configure_logging
from credify.runtime import CredifyRuntime, build_runtime

from .routes import router


def create_app(runtime_factory: Callable[[], CredifyRuntime] = build_runtime) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = runtime_factory()
        app.state.runtime = runtime
        await runtime.monitor.start()
        try:
            yield
        finally:
            await runtime.monitor.stop()

    app = FastAPI(title="Credify API", version="0.1.0", lifespan=lifespan)

    # CORS (dev-friendly): allow a local frontend to call this API.
    # - CREDIFY_CORS_ORIGINS="http://localhost:5173,http://127.0.0.1:5173"
    # - CREDIFY_CORS_ALLOW_LOCAL=0 to disable the default localhost allowance
    cors_origins = [s.strip() for s in os.getenv("CREDIFY_CORS_ORIGINS", "").split(",") if s.strip()]
    cors_allow_local = os.getenv("CREDIFY_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
    cors_origin_regex = (
        r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$" if cors_allow_local and not cors_origins else ""
    )
    if cors_origins or cors_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_origin_regex=cors_origin_regex or None,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)
    return app


configure_logging()

app = create_app()
