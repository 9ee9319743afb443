"""
FastAPI application entry point.
"""
from fastapi import FastAPI
from esupervision.api.routes import health

app = FastAPI(
    title="eSupervision Check-ins",
    description="Check-in lifecycle and identity verification service",
    version="1.0.0"
)

# Include routers
app.include_router(health.router, tags=["Health"])

@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "eSupervision Check-ins",
        "version": "1.0.0",
        "docs": "/docs"
    }
