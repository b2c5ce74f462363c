import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse
from sqlalchemy import select

from app.models.user import User
from app.routes import auth, user, post
from app.utils.security import get_password_hash
from config import API_PREFIX, ENVIRONMENT, ADMIN_USERNAME, ADMIN_EMAIL, ADMIN_PASSWORD
from database import SessionLocal, create_tables

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Network API")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix=f"{API_PREFIX}/auth", tags=["Authentication"])
app.include_router(user.router, prefix=f"{API_PREFIX}/users", tags=["Users"])
app.include_router(post.router, prefix=f"{API_PREFIX}/posts", tags=["Posts"])


def _validation_message(error: dict) -> str:
    field = error["loc"][-1] if error.get("loc") else "request"
    if error.get("type") == "missing":
        return f"{field} is required"
    message = error.get("msg", "Validation failed")
    return message.removeprefix("Value error, ")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": str(error["loc"][-1]) if error.get("loc") else None, "message": _validation_message(error)}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "message": errors[0]["message"] if errors else "Validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    content = {"success": False, "message": "Internal server error"}
    if ENVIRONMENT == "development":
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


async def ensure_admin():
    """Create the bootstrap admin account when it is configured and missing."""
    if not (ADMIN_EMAIL and ADMIN_PASSWORD):
        return

    async with SessionLocal() as db:
        existing = await db.scalar(select(User.id).filter(User.email == ADMIN_EMAIL))
        if existing:
            return

        db.add(User(
            username=ADMIN_USERNAME,
            email=ADMIN_EMAIL,
            password_hash=get_password_hash(ADMIN_PASSWORD),
            first_name="Admin",
            last_name="User",
            role="admin",
            is_active=True,
        ))
        await db.commit()
        logger.info(f"Created bootstrap admin {ADMIN_EMAIL}")


@app.on_event("startup")
async def startup_event():
    await create_tables()
    await ensure_admin()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
