"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from clipper.api import router
from clipper.core.logging import configure_logging
from clipper.core.settings import APP_VERSION, PATHS, AppPaths
from clipper.services.config_store import load_config, save_config
from clipper.services.engine import JobEngine
from clipper.services.job_store import JobStore
from clipper.services.process import ProcessRunner

logger = logging.getLogger(__name__)


def create_app(
    paths: Optional[AppPaths] = None,
    runner: Optional[ProcessRunner] = None,
    simulated_runner: Optional[ProcessRunner] = None,
) -> FastAPI:
    app_paths = paths or PATHS

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        app_paths.ensure()

        # Ensure config file exists with defaults.
        if not app_paths.config_path.exists():
            save_config(load_config(app_paths.config_path), app_paths.config_path)
        config = load_config(app_paths.config_path)

        engine = JobEngine(
            JobStore(app_paths.jobs_root),
            app_paths,
            config,
            runner=runner,
            simulated_runner=simulated_runner,
        )
        engine.sweep_expired()
        engine.fail_interrupted_jobs()

        app.state.paths = app_paths
        app.state.engine = engine
        logger.info("Clipper %s ready, runtime at %s", APP_VERSION, app_paths.runtime_root)

        yield

        await engine.shutdown()

    app = FastAPI(title="YT Clipper", version=APP_VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    return app


app = create_app()
