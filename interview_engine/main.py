# interview_engine/main.py
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from interview_engine.config import get_settings
from interview_engine.db import init_db
from interview_engine.errors import InterviewError, InvalidRequestError
from interview_engine.api.routes import router as api_router


settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("interview_engine")

app = FastAPI(title="Interview Engine API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # for dev; tighten in prod
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)


@app.middleware("http")
async def request_metadata(request: Request, call_next):
    # Only route, id, status and timing are logged; never payloads.
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    started = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - started) * 1000)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request route=%s request_id=%s status=%s duration_ms=%d",
        request.url.path,
        request_id,
        response.status_code,
        duration_ms,
    )
    return response


@app.exception_handler(InterviewError)
async def interview_error_handler(request: Request, exc: InterviewError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning(
            "request_id=%s failed with %s (%s)",
            getattr(request.state, "request_id", None),
            type(exc).__name__,
            exc.status_code,
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for err in exc.errors():
        # Drop the leading "body" segment FastAPI adds to body field paths.
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        path = ".".join(loc)
        messages.append(f"{path}: {err.get('msg')}" if path else str(err.get("msg")))
    error = "Invalid JSON body." if any(e.get("type") == "json_invalid" for e in exc.errors()) else None
    invalid = InvalidRequestError(error, details="; ".join(messages))
    return JSONResponse(status_code=invalid.status_code, content=invalid.to_payload())


@app.on_event("startup")
def on_startup() -> None:
    init_db()


@app.get("/")
def root():
    return {"message": "Interview Engine API is running"}


app.include_router(api_router, prefix="/api")
