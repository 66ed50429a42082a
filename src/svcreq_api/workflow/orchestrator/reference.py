"""
Reference Codes

Human-readable request references, e.g. REQ-20250114-482913.
"""

from datetime import datetime
from typing import Optional

from svcreq_api.workflow.models.request import utc_now


def generate_reference_code(prefix: str, now: Optional[datetime] = None, offset: int = 0) -> str:
    """
    PREFIX-YYYYMMDD-NNNNNN where NNNNNN is the last six digits of the epoch milliseconds.

    Args:
        prefix: "REQ" for item requests, "SVR" for vehicle requests by default
        now: Creation time (defaults to current UTC time)
        offset: Added to the millisecond counter when retrying after a collision
    """
    now = now or utc_now()
    millis = int(now.timestamp() * 1000) + offset
    return f"{prefix}-{now:%Y%m%d}-{millis % 1_000_000:06d}"
