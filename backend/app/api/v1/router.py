"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import loads, assignment, stops, analytics

router = APIRouter()

# Load lifecycle and tracking history
router.include_router(loads.router)

# Assignment and backhaul
router.include_router(assignment.router)
router.include_router(assignment.driver_router)

# Stop progress and proof of delivery
router.include_router(stops.router)

# Dashboards
router.include_router(analytics.router)
