import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing.core.config import get_settings
from billing.core.database import SessionLocal, init_db
from billing.core.security import hash_password
from billing.models.user import User
from billing.routers import auth, health, marketplace, products

# --- Load settings ---
settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# --- Create DB tables ---
init_db()

# --- Create FastAPI app ---
app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed parameters are a client error: answer 400 with a stable kind."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": {
                "kind": "validation_error",
                "message": "Invalid request parameters",
                "errors": jsonable_encoder(exc.errors()),
            }
        },
    )


@app.on_event("startup")
def bootstrap_admin():
    """Create the first admin account from settings if it does not exist yet."""
    if not (settings.bootstrap_admin_email and settings.bootstrap_admin_password):
        return

    db = SessionLocal()
    try:
        email = settings.bootstrap_admin_email.lower()
        if db.query(User).filter(User.email == email).first():
            return
        db.add(
            User(
                email=email,
                name="Administrator",
                hashed_password=hash_password(settings.bootstrap_admin_password),
                role="admin",
            )
        )
        db.commit()
        logger.info("Created bootstrap admin account %s", email)
    finally:
        db.close()


# --- Routers ---
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(products.router)
app.include_router(marketplace.router)


# --- Root endpoint ---
@app.get("/")
def root():
    return {
        "message": f"{settings.app_name} is running",
        "endpoints": {
            "health": "/health",
            "auth": "/auth",
            "products": "/products",
            "marketplace": "/marketplace",
        },
    }
