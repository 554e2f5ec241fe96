from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from portal.db.init_db import init_db
from portal.embed.powerbi import PowerBIConfig, PowerBITokenService
from portal.embed.resolver import EmbedResolver
from portal.entra import EntraConfig, EntraTokenValidator
from portal.errors import InvalidStateError, NotFoundError, UnknownReportTypeError
from portal.logging_config import configure_app_logging
from portal.routers import admin, health, reports
from portal.security.config import load_security_config
from portal.security.dependencies import enforce_security
from portal.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def build_embed_resolver(settings: Settings) -> EmbedResolver:
    token_service = PowerBITokenService(PowerBIConfig.from_settings(settings))
    if not token_service.is_configured:
        logger.info("Power BI credentials not configured; Power BI reports use their embed URL")
    return EmbedResolver(token_service=token_service, ssrs_proxy_path=settings.ssrs_proxy_path)


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


async def _invalid_state(request: Request, exc: InvalidStateError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


async def _unknown_report_type(request: Request, exc: UnknownReportTypeError) -> JSONResponse:
    logger.error("Catalog holds an unknown report type: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "This report cannot be displayed. Please contact an administrator."},
    )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        app.state.security_config = load_security_config(settings.resolved_security_config_path())
        logger.info("Loaded security config: %s", settings.resolved_security_config_path())
        if app.state.security_config.auth.provider == "entra":
            app.state.token_validator = EntraTokenValidator(EntraConfig.from_settings(settings))

        app.state.embed_resolver = build_embed_resolver(settings)
        init_db()
        logger.info("Database initialized (tables ensured + seed if needed)")

        yield

    # Global dependency: every route goes through the configured security rules.
    app = FastAPI(title="Reporting Portal", dependencies=[Depends(enforce_security)], lifespan=lifespan)

    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(InvalidStateError, _invalid_state)
    app.add_exception_handler(UnknownReportTypeError, _unknown_report_type)

    app.include_router(health.router)
    app.include_router(reports.router)
    app.include_router(admin.router)

    return app


app = create_app()
