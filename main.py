from fastapi import APIRouter, FastAPI, HTTPException, Request, status
import os
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import FormData, UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from access_filter import AllowListMiddleware
from candidate_upload import (
    CandidateRecord,
    ErrorResponse,
    UploadedFile,
    EXAMPLE_FILENAME,
    XLSX_CONTENT_TYPE,
    build_example_workbook,
    validate_upload
)
from config import Settings, get_settings
from utils.result import Result

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MALFORMED_BODY_MESSAGE = "There was an error parsing the body"

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """
    Configure console logging and a dated log file under settings.log_dir.
    """
    os.makedirs(settings.log_dir, exist_ok=True)
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    log_file_path = os.path.join(settings.log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
    root_logger = logging.getLogger()
    # Avoid stacking file handlers when the app is built more than once
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == os.path.abspath(log_file_path):
            return
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(file_handler)


def route_not_found_response() -> JSONResponse:
    body = Result.not_found().to_dict()
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=body)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unsupported methods on existing paths are reported as unknown routes
    if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
        logger.info(f"Route not found: {request.method} {request.url.path}")
        return route_not_found_response()
    result = Result.fail(str(exc.detail), status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=result.to_dict(), headers=exc.headers)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
        messages.append(f"{location} {error.get('msg', 'is invalid')}".strip())
    result = Result.invalid_input(messages)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.to_dict())


router = APIRouter()


# API Endpoints
@router.get("/", tags=["General"])
async def welcome():
    """Fixed welcome message."""
    return {"message": "Welcome to the Candidate Upload API"}


@router.get("/health", tags=["General"])
async def health():
    """
    Liveness check.

    Returns:
        dict: status and current UTC timestamp in ISO-8601
    """
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


# Documented body of POST /candidates; the handler reads the raw form itself
CANDIDATE_FORM_SCHEMA = {
    "requestBody": {
        "required": True,
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "required": ["name", "surname", "file"],
                    "properties": {
                        "name": {"type": "string"},
                        "surname": {"type": "string"},
                        "file": {"type": "string", "format": "binary"}
                    }
                }
            }
        }
    }
}


def form_text(form: FormData, field_name: str) -> Optional[str]:
    """Raw text value of a form field, or None when it is absent or not text."""
    value = form.get(field_name)
    return value if isinstance(value, str) else None


async def read_form_upload(value, max_size_bytes: int) -> Optional[UploadedFile]:
    """
    Copy a form file part into an UploadedFile without reading past the size ceiling.

    Args:
        value: The form value sent under the file field
        max_size_bytes: Upload size ceiling

    Returns:
        UploadedFile, or None when the part is absent or is not a file
    """
    if not isinstance(value, StarletteUploadFile):
        return None
    content = await value.read(max_size_bytes + 1)
    size = value.size if value.size is not None else len(content)
    return UploadedFile(
        filename=value.filename or "",
        content_type=value.content_type,
        content=content,
        size_bytes=size
    )


@router.post(
    "/candidates",
    tags=["Candidates"],
    status_code=status.HTTP_201_CREATED,
    response_model=CandidateRecord,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse}},
    openapi_extra=CANDIDATE_FORM_SCHEMA
)
async def create_candidate(request: Request):
    """
    Validate a candidate's name, surname and spreadsheet.

    Expects a multipart form with the fields name, surname and file. The
    spreadsheet must be an .xlsx file of at most 200 KB whose first
    worksheet has the headers Seniority, Years of experience and
    Availability followed by exactly one row of non-empty values.

    Returns:
        201 with the normalized candidate, or 400 with every violation found
    """
    settings: Settings = request.app.state.settings

    try:
        form = await request.form()
    except Exception as e:
        logger.warning(f"Failed to parse candidate form: {e}", extra={"error_type": type(e).__name__})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MALFORMED_BODY_MESSAGE) from e

    try:
        uploaded = await read_form_upload(form.get("file"), settings.max_upload_bytes)
        result = validate_upload(
            uploaded,
            form_text(form, "name"),
            form_text(form, "surname"),
            max_size_bytes=settings.max_upload_bytes
        )
    finally:
        await form.close()

    # Single exit point
    if result.is_failure():
        return JSONResponse(status_code=result.status_code.value, content=result.to_dict())
    return JSONResponse(
        status_code=result.status_code.value,
        content=result.data.model_dump(by_alias=True)
    )


@router.get(
    "/candidates/example-excel",
    tags=["Candidates"],
    response_class=Response,
    responses={status.HTTP_200_OK: {"content": {XLSX_CONTENT_TYPE: {}}}}
)
async def download_example_excel():
    """Download a spreadsheet that passes every upload check."""
    logger.info("Serving example spreadsheet")
    return Response(
        content=build_example_workbook(),
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXAMPLE_FILENAME}"'}
    )


def create_app(settings: Settings) -> FastAPI:
    """
    Build the application from already-loaded settings.

    The allow-list is taken from settings once, here, and handed to the
    middleware; it does not change for the lifetime of the app.
    """
    configure_logging(settings)

    allow_list = settings.allow_list()
    if allow_list.is_empty():
        logger.warning("ALLOWED_IPS is empty, every request will be rejected with 403")
    else:
        logger.info(f"Allow-list loaded with {len(allow_list.addresses)} address(es)")

    # Initialize FastAPI app with metadata
    app = FastAPI(
        title="Candidate Upload API",
        description="API for validating candidate spreadsheets",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/docs-json"
    )
    app.state.settings = settings

    app.add_middleware(AllowListMiddleware, allow_list=allow_list, trust_proxy=settings.trust_proxy)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.include_router(router)

    logger.info(f"Candidate Upload API configured for '{settings.app_env}' environment")
    return app


app = create_app(get_settings())


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Candidate Upload API.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=app.state.settings.app_env == "development")
