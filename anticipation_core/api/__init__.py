"""
Payment Plan API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..errors import AnticipationError
from ..logging_config import get_logger, log_action
from .anticipations import router as anticipations_router
from .receivables import router as receivables_router
from .indexes import router as indexes_router
from .payment_plans import router as payment_plans_router
from .installments import router as installments_router


logger = get_logger("antecipa.api")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Receivables Anticipation API",
        description="Payment plan installment engine for receivables anticipation",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AnticipationError)
    async def handle_domain_error(request: Request, exc: AnticipationError):
        level = "error" if exc.status_code >= 500 else "warning"
        log_action(logger, level, exc.message,
                   action="request_failed",
                   resource=request.url.path,
                   extra={"error": type(exc).__name__, "status_code": exc.status_code})
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": type(exc).__name__}
        )

    app.include_router(anticipations_router, prefix="/anticipations", tags=["Anticipations"])
    app.include_router(receivables_router, prefix="/receivables", tags=["Receivables"])
    app.include_router(indexes_router, prefix="/indexes", tags=["Indexes"])
    app.include_router(payment_plans_router, prefix="/payment-plans", tags=["Payment Plans"])
    app.include_router(installments_router, prefix="/installments", tags=["Installments"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "anticipation_core_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Receivables Anticipation API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "anticipations": "/anticipations",
                "receivables": "/receivables",
                "indexes": "/indexes",
                "payment-plans": "/payment-plans",
                "installments": "/installments"
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, reload: bool = False,
               log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "anticipation_core.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level.lower()
    )
