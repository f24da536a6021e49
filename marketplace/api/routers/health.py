"""Health check endpoints for the marketplace workflow engine.

Provides Kubernetes-compatible health probes:
- /health: Basic health check
- /health/live: Liveness probe (is the app running?)
- /health/ready: Readiness probe (can the app reach its database?)
- /health/detailed: Database, disk and memory checks
"""

import time
from typing import Dict, Any
from datetime import datetime

import psutil
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy import text

from marketplace import __version__
from marketplace.api.deps import get_db

router = APIRouter(tags=["health"])

# Thresholds
DISK_WARNING_PERCENT = 85
DISK_CRITICAL_PERCENT = 95
MEMORY_WARNING_PERCENT = 85
MEMORY_CRITICAL_PERCENT = 95


def _grade(percent_used: float, warning: float, critical: float) -> str:
    if percent_used >= critical:
        return "critical"
    if percent_used >= warning:
        return "warning"
    return "healthy"


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity."""
    start = time.time()
    try:
        db.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start) * 1000, 2),
        "dialect": db.get_bind().dialect.name,
    }


def check_disk() -> Dict[str, Any]:
    """Check disk space."""
    try:
        disk = psutil.disk_usage("/")
    except OSError as e:
        return {
            "status": "unknown",
            "error": str(e),
        }
    return {
        "status": _grade(disk.percent, DISK_WARNING_PERCENT, DISK_CRITICAL_PERCENT),
        "total_gb": round(disk.total / (1024**3), 2),
        "free_gb": round(disk.free / (1024**3), 2),
        "percent_used": disk.percent,
    }


def check_memory() -> Dict[str, Any]:
    """Check memory usage."""
    memory = psutil.virtual_memory()
    return {
        "status": _grade(memory.percent, MEMORY_WARNING_PERCENT, MEMORY_CRITICAL_PERCENT),
        "total_gb": round(memory.total / (1024**3), 2),
        "available_gb": round(memory.available / (1024**3), 2),
        "percent_used": memory.percent,
    }


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.

    Returns 200 if the application is running.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/live")
async def liveness_probe():
    """
    Kubernetes liveness probe.

    This check should be fast and not depend on external services.
    """
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "alive",
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


@router.get("/health/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """
    Kubernetes readiness probe.

    Failure means traffic should not be routed to this instance.
    """
    checks = {
        "database": check_database(db),
    }

    unhealthy = [name for name, check in checks.items() if check["status"] == "unhealthy"]

    if unhealthy:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "checks": checks,
                "failed": unhealthy,
                "timestamp": datetime.utcnow().isoformat(),
            },
        )

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={
            "status": "ready",
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with database, disk and memory metrics."""
    checks = {
        "database": check_database(db),
        "disk": check_disk(),
        "memory": check_memory(),
    }

    statuses = [check.get("status", "unknown") for check in checks.values()]

    if "unhealthy" in statuses or "critical" in statuses:
        overall_status = "unhealthy"
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    elif "warning" in statuses:
        overall_status = "degraded"
        http_status = status.HTTP_200_OK
    else:
        overall_status = "healthy"
        http_status = status.HTTP_200_OK

    return JSONResponse(
        status_code=http_status,
        content={
            "status": overall_status,
            "version": __version__,
            "checks": checks,
            "timestamp": datetime.utcnow().isoformat(),
        },
    )
