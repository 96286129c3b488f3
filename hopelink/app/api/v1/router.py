"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from hopelink.app.api.v1.endpoints import (
    auth, admin, workflow, donations, requests, deliveries, notifications
)

router = APIRouter()

# Authentication endpoints
router.include_router(auth.router)

# Workflow tables, status boundary and change feed
router.include_router(workflow.router)
router.include_router(workflow.changes_router)

# Entities
router.include_router(donations.router)
router.include_router(requests.router)
router.include_router(deliveries.router)

router.include_router(notifications.router)

# Admin endpoints
router.include_router(admin.router)
