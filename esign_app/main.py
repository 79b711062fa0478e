# esign_app/main.py

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from esign_app.core.config import Settings, get_settings
from esign_app.esign.exceptions import ESignBaseException, error_response
from esign_app.esign.router import router as esign_routes
from esign_app.utils.logger import get_logger, setup_app_logging

settings = get_settings()

# Create the FastAPI app
esign_gateway = FastAPI(
    title=f"E-Signature Gateway - {settings.environment}",
    description="Sends PDF agreements for signature through DocuSign",
    docs_url="/docs",
    redoc_url="/redoc",
)

setup_app_logging(esign_gateway, settings)
logger = get_logger(__name__)


def cors_options(settings: Settings) -> dict:
    """Credentials are only allowed for an explicit origin list."""
    origins = [o.strip() for o in settings.allowed_cors_urls.split(",") if o.strip()]
    return {
        "allow_origins": origins,
        "allow_credentials": "*" not in origins,
        "allow_methods": ["*"],
        "allow_headers": ["*"],
    }


esign_gateway.add_middleware(CORSMiddleware, **cors_options(settings))


@esign_gateway.exception_handler(ESignBaseException)
async def esign_exception_handler(request: Request, exc: ESignBaseException):
    """
    Only the top-level message reaches the caller; provider details stay in the logs.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "esign_request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
        details=exc.details,
    )
    return error_response(exc)


esign_gateway.include_router(esign_routes)


# Root API to check if the server is up
@esign_gateway.get("/", tags=["Base"])
async def health_check():
    """
    Root API to check if the server is up
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("esign_app.main:esign_gateway", host="0.0.0.0", port=8000)
