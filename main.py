"""
Main FastAPI application entry point for Identity Reconciliation System
This file sets up the FastAPI application with configuration, middleware,
error mapping and the /identify endpoint. It serves as the entry point
for both local development and AWS Lambda deployment.
"""

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from datetime import datetime, timezone

from schemas.identify import IdentifyRequest, IdentifyResponse, ErrorResponse
from services.exceptions import InvalidInputError, StoreUnavailableError
from services.identity_service import IdentityService, identity_service
from config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create FastAPI application instance
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    debug=settings.DEBUG
)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


def get_identity_service() -> IdentityService:
    """Dependency providing the reconciliation engine"""
    return identity_service


def _error_message(error: dict) -> str:
    # pydantic prefixes ValueError messages with "Value error, "
    cause = (error.get("ctx") or {}).get("error")
    if isinstance(cause, Exception):
        return str(cause)
    message = error.get("msg", "Invalid value")
    return message.split("Value error, ", 1)[-1]


def _error_response(status_code: int, error: str, message: str, details: dict = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, message=message, details=details).model_dump(exclude_none=True)
    )


# Exception handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request body validation errors as 400 with a readable message"""
    logger.warning(f"Validation error for {request.url}: {exc.errors()}")

    error_details = []
    for error in exc.errors():
        error_details.append({
            "field": " -> ".join(str(x) for x in error["loc"]),
            "message": _error_message(error),
            "type": error["type"]
        })

    message = error_details[0]["message"] if error_details else "Request validation failed"
    return _error_response(400, "ValidationError", message, {"errors": error_details})


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error(f"Unexpected error for {request.url}: {exc}", exc_info=exc)
    return _error_response(500, "InternalServerError", "An unexpected error occurred")


@app.get("/")
async def root():
    """
    Root endpoint that returns basic API information
    """
    return {
        "message": "Identity Reconciliation API is running",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check(service: IdentityService = Depends(get_identity_service)):
    """
    Health check endpoint for monitoring and load balancer health checks
    """
    db_status = "unknown"
    db_error = None
    try:
        if await service.db_manager.test_connection():
            db_status = "connected"
        else:
            db_status = "disconnected"
    except Exception as e:
        db_status = "error"
        db_error = type(e).__name__

    response = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": settings.API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "lambda": settings.is_lambda_environment(),
        "database": {
            "status": db_status
        }
    }

    if db_error:
        response["database"]["error"] = db_error

    return response


@app.post("/identify", response_model=IdentifyResponse)
async def identify_endpoint(
    request: IdentifyRequest,
    service: IdentityService = Depends(get_identity_service)
):
    """
    Main identity reconciliation endpoint

    Links customer identities based on email and/or phone number.
    Returns consolidated contact information including all linked emails,
    phone numbers, and secondary contact IDs.

    **Algorithm:**
    1. Find existing contacts matching email or phone
    2. If no matches → create new primary contact
    3. If matches found → expand to their full clusters
       - Several primaries → oldest stays primary, the rest are demoted
       - New information → create secondary contact
    4. Return consolidated contact information (primary's values first)
    """
    logger.info(f"Processing identify request: email={request.email}, phone={request.phoneNumber}")

    try:
        response = await service.reconcile(request.email, request.phoneNumber)

    except InvalidInputError as e:
        logger.warning(f"Rejected identify request: {e.message}")
        return _error_response(400, "ValidationError", e.message)

    except StoreUnavailableError as e:
        logger.error(f"Database unavailable in identify endpoint: {e}")
        return _error_response(
            503,
            "DatabaseConnectionError",
            "Database is currently unavailable. Please try again later."
        )

    except Exception as e:
        logger.error(f"Error in identify endpoint: {e}", exc_info=True)
        return _error_response(
            500,
            "InternalServerError",
            "Unable to process identity reconciliation request"
        )

    logger.info(f"Successfully processed request. Primary contact ID: {response.contact.primaryContactId}")
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1
    )
