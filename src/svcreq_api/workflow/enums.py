"""
Workflow Enums

All enum types used throughout the workflow system.
Values must match exactly with database constraints.
"""

from enum import Enum

# ════════════════════════════════════════════════════════════════════════════
# Directory Enums
# ════════════════════════════════════════════════════════════════════════════


class UserRole(str, Enum):
    """Roles a directory user can hold."""

    REQUESTOR = "requestor"
    DEPARTMENT_APPROVER = "department_approver"
    IT_MANAGER = "it_manager"
    SERVICE_DESK = "service_desk"
    SUPER_ADMINISTRATOR = "super_administrator"


# ════════════════════════════════════════════════════════════════════════════
# Request Enums
# ════════════════════════════════════════════════════════════════════════════


class RequestKind(str, Enum):
    """Type of request."""

    ITEM = "item"  # IT equipment request
    VEHICLE = "vehicle"  # Service vehicle request


class ItemRequestStatus(str, Enum):
    """Item request lifecycle status."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    DEPARTMENT_APPROVED = "department_approved"
    DEPARTMENT_DECLINED = "department_declined"
    IT_MANAGER_APPROVED = "it_manager_approved"
    IT_MANAGER_DECLINED = "it_manager_declined"
    SERVICE_DESK_PROCESSING = "service_desk_processing"
    COMPLETED = "completed"
    RETURNED = "returned"


class VehicleRequestStatus(str, Enum):
    """Vehicle request lifecycle status."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    DEPARTMENT_APPROVED = "department_approved"
    DECLINED = "declined"
    COMPLETED = "completed"
    RETURNED = "returned"


class Priority(str, Enum):
    """Item request priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class VehicleRequestType(str, Enum):
    """Vehicle request subtype."""

    DROP_PASSENGER_ONLY = "drop_passenger_only"
    POINT_TO_POINT_SERVICE = "point_to_point_service"
    PASSENGER_PICKUP_ONLY = "passenger_pickup_only"
    ITEM_PICKUP = "item_pickup"
    ITEM_DELIVERY = "item_delivery"
    CAR_ONLY = "car_only"


class ReturnTarget(str, Enum):
    """Who receives a returned request."""

    REQUESTOR = "requestor"
    DEPARTMENT_APPROVER = "department_approver"


class SortField(str, Enum):
    """Ordering of request listings (created_at DESC breaks ties)."""

    DATE = "date"
    STATUS = "status"
    REQUESTOR = "requestor"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


# ════════════════════════════════════════════════════════════════════════════
# Approval Enums
# ════════════════════════════════════════════════════════════════════════════


class ApprovalStage(str, Enum):
    """Approval stage a decision belongs to."""

    DEPARTMENT = "department"
    IT_MANAGER = "it_manager"
    SERVICE_DESK = "service_desk"
    STEWARD = "steward"  # Vehicle steward (ODHC) completion
    VERIFICATION = "verification"


class ApprovalDecision(str, Enum):
    """Approval decision status."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"
    RETURNED = "returned"


class VerificationStatus(str, Enum):
    """Secondary verification lane status (vehicle requests only)."""

    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    DECLINED = "declined"


# ════════════════════════════════════════════════════════════════════════════
# Transition Enums
# ════════════════════════════════════════════════════════════════════════════


class WorkflowAction(str, Enum):
    """Actions that move a request through the state machine."""

    SUBMIT = "submit"
    APPROVE = "approve"
    DECLINE = "decline"
    RETURN = "return"
    PROCESS = "process"  # Service desk picks up the request
    COMPLETE = "complete"  # Vehicle completion with assigned resources


class Capability(str, Enum):
    """What an actor may do with a specific request."""

    OWNER = "owner"  # The requestor
    APPROVER = "approver"  # Member of pending_approver_ids at an approval stage
    STEWARD = "steward"  # Department approver of a vehicle steward department
    ADMINISTRATOR = "administrator"  # Super administrator


# ════════════════════════════════════════════════════════════════════════════
# Audit Trail Enums
# ════════════════════════════════════════════════════════════════════════════


class AuditAction(str, Enum):
    """Audit trail action types."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    SUBMIT = "SUBMIT"
    APPROVE = "APPROVE"
    DECLINE = "DECLINE"
    RETURN = "RETURN"
    DELETE = "DELETE"
    PROCESS = "PROCESS"
    ASSIGN_VERIFIER = "ASSIGN_VERIFIER"
    VERIFY = "VERIFY"


class EntityType(str, Enum):
    """Entity types in the system (for audit trail)."""

    ITEM_REQUEST = "item_request"
    VEHICLE_REQUEST = "vehicle_request"
