from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace import __version__
from marketplace.core.config import get_settings
from marketplace.core.logger import configure_logging
from marketplace.api.routers import entities, escalations, audit, health
from marketplace.api.middleware.request_log import RequestLogMiddleware

settings = get_settings()
configure_logging(settings)

app = FastAPI(
    title=settings.app_name,
    description="Approval workflow engine for marketplace sellers, products and returns",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request logging middleware - tags and logs all API requests
app.add_middleware(RequestLogMiddleware)

# Include routers
app.include_router(entities.router, prefix="/api")
app.include_router(escalations.router, prefix="/api")
app.include_router(audit.router, prefix="/api")
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
