# treeshop/domain/enums.py
from __future__ import annotations

from enum import StrEnum
from typing import Optional


class WorkflowStage(StrEnum):
    LEAD = "LEAD"
    PROPOSAL = "PROPOSAL"
    WORK_ORDER = "WORK_ORDER"
    INVOICE = "INVOICE"
    COMPLETED = "COMPLETED"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def next_stage(self) -> Optional["WorkflowStage"]:
        order = list(WorkflowStage)
        idx = order.index(self)
        return order[idx + 1] if idx + 1 < len(order) else None

    @property
    def is_terminal(self) -> bool:
        return self.next_stage is None


class ServiceType(StrEnum):
    TREE_REMOVAL = "TREE_REMOVAL"
    TREE_TRIMMING = "TREE_TRIMMING"
    STUMP_GRINDING = "STUMP_GRINDING"
    FORESTRY_MULCHING = "FORESTRY_MULCHING"
    TREE_ASSESSMENT = "TREE_ASSESSMENT"
    EMERGENCY_SERVICE = "EMERGENCY_SERVICE"


class UrgencyLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class LeadSource(StrEnum):
    WEBSITE = "WEBSITE"
    REFERRAL = "REFERRAL"
    DRIVE_BY = "DRIVE_BY"
    REPEAT_CUSTOMER = "REPEAT_CUSTOMER"
    GOOGLE = "GOOGLE"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    DIRECT_MAIL = "DIRECT_MAIL"
    YARD_SIGN = "YARD_SIGN"
    OTHER = "OTHER"


class ContactMethod(StrEnum):
    PHONE = "PHONE"
    EMAIL = "EMAIL"
    TEXT = "TEXT"
    ANY = "ANY"


class CareerCategory(StrEnum):
    FIELD_OPERATIONS = "Field Operations"
    EQUIPMENT_MAINTENANCE = "Equipment & Maintenance"
    BUSINESS_OPERATIONS = "Business Operations"


_TRACK_INFO = {
    "ATC": ("Arboriculture & Tree Care", CareerCategory.FIELD_OPERATIONS),
    "TRS": ("Tree Removal & Rigging", CareerCategory.FIELD_OPERATIONS),
    "FOR": ("Forestry & Land Management", CareerCategory.FIELD_OPERATIONS),
    "LCL": ("Land Clearing & Excavation", CareerCategory.FIELD_OPERATIONS),
    "MUL": ("Mulching & Material Processing", CareerCategory.FIELD_OPERATIONS),
    "STG": ("Stump Grinding & Site Restoration", CareerCategory.FIELD_OPERATIONS),
    "ESR": ("Emergency & Storm Response", CareerCategory.FIELD_OPERATIONS),
    "LSC": ("Landscaping & Grounds", CareerCategory.FIELD_OPERATIONS),
    "EQO": ("Equipment Operations", CareerCategory.EQUIPMENT_MAINTENANCE),
    "MNT": ("Maintenance & Repair", CareerCategory.EQUIPMENT_MAINTENANCE),
    "SAL": ("Sales & Business Development", CareerCategory.BUSINESS_OPERATIONS),
    "PMC": ("Project Management & Coordination", CareerCategory.BUSINESS_OPERATIONS),
    "ADM": ("Administrative & Office Operations", CareerCategory.BUSINESS_OPERATIONS),
    "FIN": ("Financial & Accounting", CareerCategory.BUSINESS_OPERATIONS),
    "SAF": ("Safety & Compliance", CareerCategory.BUSINESS_OPERATIONS),
    "TEC": ("Technology & Systems", CareerCategory.BUSINESS_OPERATIONS),
}


class CareerTrack(StrEnum):
    ATC = "ATC"
    TRS = "TRS"
    FOR = "FOR"
    LCL = "LCL"
    MUL = "MUL"
    STG = "STG"
    ESR = "ESR"
    LSC = "LSC"
    EQO = "EQO"
    MNT = "MNT"
    SAL = "SAL"
    PMC = "PMC"
    ADM = "ADM"
    FIN = "FIN"
    SAF = "SAF"
    TEC = "TEC"

    @property
    def display_name(self) -> str:
        return _TRACK_INFO[self.value][0]

    @property
    def category(self) -> CareerCategory:
        return _TRACK_INFO[self.value][1]


class EmploymentStatus(StrEnum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_LEAVE = "On Leave"
    TERMINATED = "Terminated"


class EquipmentType(StrEnum):
    TRUCK = "Truck"
    CHIPPER = "Chipper"
    STUMP_GRINDER = "Stump Grinder"
    CRANE = "Crane"
    BUCKET_TRUCK = "Bucket Truck"
    LOADER = "Loader"
    SKID_STEER = "Skid Steer"
    TRAILER = "Trailer"
    CHAINSAW = "Chainsaw"
    MULCHER = "Mulcher"
    OTHER = "Other"


class EquipmentStatus(StrEnum):
    ACTIVE = "Active"
    IN_MAINTENANCE = "In Maintenance"
    OUT_OF_SERVICE = "Out of Service"
    SOLD = "Sold"
    RETIRED = "Retired"


class TreeHealthStatus(StrEnum):
    HEALTHY = "Healthy"
    NEEDS_ATTENTION = "Needs Attention"
    DECLINING = "Declining"
    HAZARD = "Hazard"
    REMOVED = "Removed"


class TreeStatus(StrEnum):
    ACTIVE = "Active"
    REMOVED = "Removed"
    PLANNED_FOR_REMOVAL = "Planned for Removal"
    MONITORED = "Monitored"


class RiskLevel(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EXTREME = "Extreme"


class ProposalStatus(StrEnum):
    DRAFT = "Draft"
    SENT = "Sent"
    VIEWED = "Viewed"
    ACCEPTED = "Accepted"
    DECLINED = "Declined"
    EXPIRED = "Expired"

    @property
    def is_terminal(self) -> bool:
        return self in (ProposalStatus.ACCEPTED, ProposalStatus.DECLINED, ProposalStatus.EXPIRED)


class WorkOrderStatus(StrEnum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"


class LineItemStatus(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class InvoiceStatus(StrEnum):
    UNPAID = "Unpaid"
    PARTIALLY_PAID = "Partially Paid"
    PAID = "Paid"
    VOID = "Void"


class CustomerType(StrEnum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    MUNICIPAL = "Municipal"
    HOA = "HOA"
    PROPERTY_MANAGEMENT = "Property Management"


class TaskType(StrEnum):
    SUPPORT = "Support"
    LINE_ITEM = "Line Item"

    @property
    def is_billable(self) -> bool:
        return self is TaskType.LINE_ITEM


class SupportTask(StrEnum):
    FUEL_UP = "Fuel Up"
    TRANSPORT = "Transport"
    MAINTENANCE = "Maintenance"
    SAFETY_MEETING = "Safety Meeting"
    SITE_WALKTHROUGH = "Site Walkthrough"
    TRAINING = "Training"
    STOP_WORK_PLAN = "Stop Work and Plan"


class JournalEntryType(StrEnum):
    CHALLENGE = "Challenge"
    SOLUTION = "Solution"
    LESSON = "Lesson"
    NOTE = "Note"
    INCIDENT = "Incident"
