"""
FastAPI application for servicerlink.

Copyright (c) 2025 Graziano Labs Corp.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import ServicerLinkError
from ..service import SubmissionService
from . import endpoints
from .endpoints import router, set_service

logger = logging.getLogger(__name__)


def create_app(service: Optional[SubmissionService] = None) -> FastAPI:
    """Build the API app.

    Args:
        service: Submission service to serve. When omitted, one is created
            from environment configuration at startup.
    """
    app = FastAPI(title="servicerlink", version=__version__)
    app.include_router(router)

    if service is not None:
        set_service(service)
    else:
        @app.on_event("startup")
        async def init_service():
            set_service(SubmissionService())
            logger.info("Submission service initialized from environment")

    @app.on_event("shutdown")
    async def drain_learning():
        if endpoints._service is not None:
            await endpoints._service.close()

    @app.exception_handler(ServicerLinkError)
    async def servicerlink_error(request: Request, exc: ServicerLinkError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(
            status_code=503,
            content={"code": exc.code, "message": exc.message, "hint": exc.hint},
        )

    return app


app = create_app()
