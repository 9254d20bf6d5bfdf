from fastapi import APIRouter
from leave_management.routers import (
    auth, employees, departments, leave_types, balances, leaves,
    documents, notifications, admin, reports
)

# Centralized API router hub
# Routers are aggregated here, and main.py only imports this single hub.
api_router = APIRouter()

api_router.include_router(auth.router, tags=["Authentication"])
api_router.include_router(employees.router, tags=["Employees"])
api_router.include_router(departments.router, tags=["Departments"])
api_router.include_router(leave_types.router, tags=["Leave Types"])
api_router.include_router(balances.router, tags=["Leave Balances"])
api_router.include_router(leaves.router, tags=["Leave"])
api_router.include_router(documents.router, tags=["Documents"])
api_router.include_router(notifications.router, tags=["Notifications"])
api_router.include_router(admin.router, tags=["Administration"])
api_router.include_router(reports.router, tags=["Reports"])
