# Run from project root: uvicorn assistant_gateway.main:app --reload

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from assistant_gateway.api.routes import router
from assistant_gateway.core.config import LOG_LEVEL
from assistant_gateway.core.errors import GatewayError

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


app = FastAPI(title="Assistant Gateway")
app.include_router(router)


@app.exception_handler(GatewayError)
async def handle_gateway_error(request: Request, exc: GatewayError) -> JSONResponse:
    """Render domain errors as {error, details?} with the status each error carries."""
    if exc.status_code >= 500:
        logger.error("[main:gateway_error] %s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    content = {"error": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a 500 with an {error} body, never a bare text response."""
    logger.error("[main:unexpected_error] %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})
