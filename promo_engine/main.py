import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from promo_engine.config import settings, get_integrity_secret
from promo_engine.database import engine, Base
from promo_engine.models import promotion_code, rate_limit, user_account  # noqa: F401  (register tables)
from promo_engine.routers import admin as admin_router
from promo_engine.routers import promotions as promotions_router


def setup_logging() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


setup_logging()
log = logging.getLogger(__name__)

# Create database tables
Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # fail fast on a production deployment without a signing secret
    get_integrity_secret()
    log.info("Promotion engine started (env=%s)", settings.environment)
    yield
    engine.dispose()
    log.info("Shutdown OK: DB engine disposed.")


app = FastAPI(
    title="Promotion Code Engine",
    description="Issues, validates and redeems signed, usage-capped promotion codes",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS - keep permissive for demo; restrict in prod
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router.router)
app.include_router(promotions_router.router)


@app.get("/health")
def health():
    return {"status": "healthy"}


# Proper JSON error with correct status code
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"status_code": exc.status_code, "detail": exc.detail}},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"error": {"status_code": 422, "detail": jsonable_encoder(exc.errors())}},
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("promo_engine.main:app", host="0.0.0.0", port=8000, reload=True)
