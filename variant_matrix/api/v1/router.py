"""
Main API router for v1.
"""

from fastapi import APIRouter
from variant_matrix.api.v1 import matrix, sse

router = APIRouter()

router.include_router(matrix.router, prefix="/matrix/sessions", tags=["variant-matrix"])
router.include_router(sse.router, prefix="/matrix/sessions/{session_id}/events", tags=["sse"])
