"""
Lending API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..errors import (
    AlreadySettledError, ConcurrentModificationError, InvalidRequestError,
    InvalidTransitionError, LendingError, NotFoundError, OutOfRangeError,
    PermissionDeniedError, ReferentialIntegrityError, StateFormatError
)
from .users import router as users_router
from .offers import router as offers_router
from .applications import router as applications_router
from .loans import router as loans_router, payments_router
from .analytics import router as analytics_router


# Domain error -> HTTP status, most specific first
ERROR_STATUS_CODES = [
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (OutOfRangeError, 400),
    (InvalidRequestError, 400),
    (InvalidTransitionError, 409),
    (AlreadySettledError, 409),
    (ReferentialIntegrityError, 409),
    (ConcurrentModificationError, 409),
    (StateFormatError, 500),
]


def status_code_for(error: LendingError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 400


async def lending_error_handler(request: Request, exc: LendingError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code_for(exc),
        content={"detail": str(exc), "code": exc.code}
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Lending Marketplace API",
        description="Loan offers, applications, amortized repayment and portfolio analytics",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LendingError, lending_error_handler)

    # Include routers
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(offers_router, prefix="/offers", tags=["Offers"])
    app.include_router(applications_router, prefix="/applications", tags=["Applications"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(payments_router, prefix="/payments", tags=["Payments"])
    app.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "lending_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Lending Marketplace API",
            "version": __version__,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "users": "/users",
                "offers": "/offers",
                "applications": "/applications",
                "loans": "/loans",
                "payments": "/payments",
                "analytics": "/analytics",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "lending_core.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )
