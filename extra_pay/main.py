"""Main FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from extra_pay.config import get_settings
from extra_pay.database import engine, Base
from extra_pay.api.routes import router
from extra_pay.services.errors import DomainError, InvalidTransitionError, StorageUnavailable
# Import models to register them with SQLAlchemy Base
from extra_pay.models.domain import ExtraPayContract, ExtraPayCustomField, ExtraPayRequest
from extra_pay.models.audit import ExtraPayEvent

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    Base.metadata.create_all(bind=engine)

    app = FastAPI(
        title="Extra Pay Service",
        description="Extra pay contracts, requests to pay and their audit timelines.",
        version="0.1.0"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
        """Translate typed domain errors to their HTTP status."""
        content = {"error": exc.message}
        if isinstance(exc, InvalidTransitionError):
            content["from_status"] = exc.from_status
            content["to_status"] = exc.to_status
        if isinstance(exc, StorageUnavailable):
            logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
            content = {"error": "Storage temporarily unavailable"}
        else:
            logger.info("Refused %s %s: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation error", "detail": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "An unexpected error occurred"},
        )

    app.include_router(router, prefix="/api", tags=["Extra Pay"])

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "service": "Extra Pay"}

    return app


def jsonable_errors(exc: RequestValidationError):
    """Pydantic error list with only JSON-safe fields."""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
