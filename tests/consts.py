"""Constant values used for tests."""

from datetime import date
from pathlib import Path

THIS_DIR = Path(__file__).parent
PROJECT_DIR = (THIS_DIR / "../").resolve()

# Base path for all API routes; must match main.py include_router(..., prefix="/api")
API_BASE = "/api"

# Departments
FINANCE_DEPT = 1
IT_DEPT = 2
ODHC_DEPT = 3  # vehicle steward
UNSTAFFED_DEPT = 4  # no department approvers

# Users
REQUESTOR_ID = 100
OTHER_REQUESTOR_ID = 101
DEPT_APPROVER_ID = 110
DEPT_APPROVER_2_ID = 111
INACTIVE_DEPT_APPROVER_ID = 112
IT_MANAGER_ID = 120
SERVICE_DESK_ID = 130
STEWARD_APPROVER_ID = 140
ODHC_REQUESTOR_ID = 141
SUPER_ADMIN_ID = 150
UNSTAFFED_REQUESTOR_ID = 170
VERIFIER_ID = 180
INACTIVE_VERIFIER_ID = 181

# Fleet
ACTIVE_VEHICLE_ID = 1
INACTIVE_VEHICLE_ID = 2
ACTIVE_DRIVER_ID = 1
INACTIVE_DRIVER_ID = 2

# Travel windows (2026-10-25 is a Sunday)
WEEKDAY_TRIP = (date(2026, 10, 20), date(2026, 10, 22))
SUNDAY_TRIP = (date(2026, 10, 24), date(2026, 10, 25))
