# treeshop/models/__init__.py
from treeshop.models.customer import Customer
from treeshop.models.employee import Employee
from treeshop.models.equipment import Equipment
from treeshop.models.invoice import Invoice
from treeshop.models.lead import Lead, StageTransition
from treeshop.models.property import Property
from treeshop.models.proposal import Proposal, ProposalLineItem
from treeshop.models.time_entry import TimeEntry
from treeshop.models.tree import Tree
from treeshop.models.work_order import JournalEntry, WorkOrder, WorkOrderLineItem

__all__ = [
    "Customer",
    "Employee",
    "Equipment",
    "Invoice",
    "JournalEntry",
    "Lead",
    "Property",
    "Proposal",
    "ProposalLineItem",
    "StageTransition",
    "TimeEntry",
    "Tree",
    "WorkOrder",
    "WorkOrderLineItem",
]
