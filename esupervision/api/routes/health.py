"""
Health check endpoints.
"""
from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.orm import Session
from sqlalchemy import text
from esupervision.models.base import get_db
from esupervision.utils.circuit_breaker import CircuitState, all_circuit_breakers
from esupervision.utils.clock import utc_now
from esupervision.utils.logging import get_logger
from esupervision.utils.metrics import registry
from esupervision.utils.pii import sanitize_exception

logger = get_logger(__name__)

router = APIRouter()

@router.get("/health")
def health_check(db: Session = Depends(get_db)):
    """
    Health check endpoint.
    Verifies database connectivity.
    """
    try:
        db.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "timestamp": utc_now().isoformat(),
            "database": "connected"
        }
    except Exception as e:
        logger.error("Health check failed", error=sanitize_exception(e))
        return {
            "status": "unhealthy",
            "timestamp": utc_now().isoformat(),
            "database": "disconnected",
            "error": type(e).__name__
        }

@router.get("/health/circuit-breakers")
def circuit_breaker_status():
    """
    Circuit breaker states for external calls.
    Degraded when any breaker is not closed.
    """
    breakers = {
        name: {
            "state": breaker.state.value,
            "failure_rate": round(breaker.failure_rate, 2),
        }
        for name, breaker in all_circuit_breakers().items()
    }
    degraded = any(b["state"] != CircuitState.CLOSED.value for b in breakers.values())
    return {
        "status": "degraded" if degraded else "healthy",
        "timestamp": utc_now().isoformat(),
        "breakers": breakers
    }

@router.get("/metrics")
def metrics():
    """Prometheus metrics."""
    return Response(generate_latest(registry), media_type=CONTENT_TYPE_LATEST)
