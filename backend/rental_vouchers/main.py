import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rental_vouchers.api.endpoints import admin, vouchers
from rental_vouchers.core.database import Base, engine
from rental_vouchers.core.exceptions import VoucherError
from rental_vouchers.core.settings import settings

# Register every table on Base.metadata before create_all
from rental_vouchers.models import booking, car, voucher, voucher_usage  # noqa: F401

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Rental Voucher Discount Engine API")

# Configure CORS
origins = settings.resolved_cors_origins()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def startup() -> None:
    if settings.is_production and not settings.jwt_secret:
        raise RuntimeError("JWT_SECRET must be set in production")
    if settings.db_auto_create:
        Base.metadata.create_all(bind=engine)
    logger.info("app.startup.ready environment=%s timezone=%s", settings.environment, settings.voucher_timezone)


@app.exception_handler(VoucherError)
async def voucher_error_handler(request: Request, exc: VoucherError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# API Routes
app.include_router(vouchers.router, prefix="/api", tags=["vouchers"])
app.include_router(admin.router, prefix="/api", tags=["admin"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
