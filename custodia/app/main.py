from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from custodia.app.api.v1.router import router as v1_router
from custodia.app.core.config import get_settings
from custodia.app.core.logging import setup_logging
from custodia.services.errors import (
    CustodyError,
    DuplicateReturnInFlight,
    InsufficientStock,
    NotFound,
    StaleManifestState,
    ValidationError,
)

STATUS_BY_ERROR = {
    NotFound: 404,
    ValidationError: 422,
    InsufficientStock: 409,
    StaleManifestState: 409,
    DuplicateReturnInFlight: 409,
}

setup_logging(get_settings().log_level)

app = FastAPI(title="Custódia - Romaneios", version="0.1.0")
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(CustodyError)
async def custody_error_handler(request: Request, exc: CustodyError):
    status_code = next((code for cls, code in STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400)
    return JSONResponse(status_code=status_code, content=exc.as_dict())
