from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coupon_engine.core.config import settings
from coupon_engine.routers import analytics, coupons, eligibility, redemptions

OPENAPI_TAGS = [
    {"name": "Coupons", "description": "Create, read, update, and delete coupons."},
    {"name": "Eligibility", "description": "Check whether a coupon can be used for an order."},
    {"name": "Redemptions", "description": "Consume coupon capacity and track refunds."},
    {"name": "Analytics", "description": "Coupon usage statistics and top coupons."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Coupon eligibility and redemption API for the marketplace. "
        "Manage coupons, evaluate them against orders, record redemptions "
        "and report on their usage."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count", "Retry-After"],
)


app.include_router(coupons.router, prefix="/v1/coupons", tags=["Coupons"])
app.include_router(eligibility.router, prefix="/v1/eligibility", tags=["Eligibility"])
app.include_router(redemptions.router, prefix="/v1/redemptions", tags=["Redemptions"])
app.include_router(analytics.router, prefix="/v1/analytics", tags=["Analytics"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }
