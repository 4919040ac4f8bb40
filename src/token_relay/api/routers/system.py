"""System endpoints: health check and version info."""

from fastapi import APIRouter

from token_relay import __version__

router = APIRouter(tags=["system"])


@router.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}
