"""
V1 API router aggregator — wires all endpoint modules together.
"""

from fastapi import APIRouter

from roster.api.v1.endpoints import (alerts, auth, checkins, departments,
                                     members, schedules, settings, users)

api_router = APIRouter()

# Auth (register, verify, login, refresh, me)
api_router.include_router(auth.router)

# Approval workflow & roles
api_router.include_router(users.router)

# Departments, positions, leaders
api_router.include_router(departments.router)
api_router.include_router(members.router)

# Duty slots
api_router.include_router(schedules.router)

# Attendance
api_router.include_router(checkins.router)
api_router.include_router(alerts.router)

# Check-in settings, health
api_router.include_router(settings.router)
