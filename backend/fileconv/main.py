"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fileconv.api.routes import router
from fileconv.config import CORS_ORIGINS, DEBUG, MAX_SERVER_UPLOAD_BYTES, logger as config_logger
from fileconv.errors import ConversionError

logging.getLogger("uvicorn").setLevel(logging.INFO)
logger = logging.getLogger("fileconv.app")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_logger.info(
        "File converter API started (server upload limit %.1f MB, debug=%s)",
        MAX_SERVER_UPLOAD_BYTES / (1024 * 1024),
        DEBUG,
    )
    yield
    config_logger.info("File converter API shutting down")


app = FastAPI(
    title="File Converter API",
    description="Convert images, documents and PDFs; media conversions are delegated to the client.",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS if CORS_ORIGINS else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


async def security_headers_middleware(request: Request, call_next):
    """Add SECURITY_HEADERS to every /api response."""
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
    return response


async def conversion_error_handler(request: Request, exc: ConversionError):
    if exc.status_code >= 500:
        logger.error("%s %s -> %s %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.message)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(include_details=DEBUG))


app.middleware("http")(security_headers_middleware)
app.add_exception_handler(ConversionError, conversion_error_handler)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn
    from fileconv.config import HOST, PORT
    uvicorn.run("fileconv.main:app", host=HOST, port=PORT, reload=True)
