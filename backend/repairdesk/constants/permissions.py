"""Central enum-like definitions to avoid typos in permission keys.
Extend cautiously; never rename keys silently - add new ones through a catalog migration.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List


class PermissionKey(str, Enum):
    # Dashboard / intake / tickets
    VIEW_DASHBOARD = 'VIEW_DASHBOARD'
    VIEW_INTAKE = 'VIEW_INTAKE'
    CREATE_TICKET = 'CREATE_TICKET'
    VIEW_TICKET_DETAILS = 'VIEW_TICKET_DETAILS'
    EDIT_TICKET_BASIC = 'EDIT_TICKET_BASIC'
    EDIT_TICKET_SENSITIVE = 'EDIT_TICKET_SENSITIVE'
    CHANGE_TICKET_STATUS = 'CHANGE_TICKET_STATUS'
    HANDOVER_TICKET = 'HANDOVER_TICKET'
    CANCEL_TICKET = 'CANCEL_TICKET'
    # Cost estimates / pricing
    VIEW_KVA = 'VIEW_KVA'
    CREATE_KVA = 'CREATE_KVA'
    EDIT_KVA_PRICE = 'EDIT_KVA_PRICE'
    APPROVE_KVA = 'APPROVE_KVA'
    REJECT_KVA = 'REJECT_KVA'
    CHANGE_FINAL_PRICE = 'CHANGE_FINAL_PRICE'
    GRANT_DISCOUNT = 'GRANT_DISCOUNT'
    # Workshop / parts
    VIEW_WORKSHOP = 'VIEW_WORKSHOP'
    VIEW_PARTS = 'VIEW_PARTS'
    MANAGE_PARTS = 'MANAGE_PARTS'
    USE_PARTS = 'USE_PARTS'
    COMPLETE_QC_CHECK = 'COMPLETE_QC_CHECK'
    # Inventory
    VIEW_INVENTORY = 'VIEW_INVENTORY'
    VIEW_STOCK_MOVEMENTS = 'VIEW_STOCK_MOVEMENTS'
    CREATE_PURCHASE_ORDER = 'CREATE_PURCHASE_ORDER'
    RECEIVE_GOODS = 'RECEIVE_GOODS'
    CREATE_MANUAL_OUT = 'CREATE_MANUAL_OUT'
    CREATE_TRANSFER = 'CREATE_TRANSFER'
    MANAGE_COMPLAINTS = 'MANAGE_COMPLAINTS'
    APPROVE_WRITE_OFF = 'APPROVE_WRITE_OFF'
    MANAGE_SUPPLIERS = 'MANAGE_SUPPLIERS'
    # Customers
    VIEW_CUSTOMERS = 'VIEW_CUSTOMERS'
    EDIT_CUSTOMERS = 'EDIT_CUSTOMERS'
    # B2B
    VIEW_B2B_PORTAL = 'VIEW_B2B_PORTAL'
    CREATE_B2B_TICKET = 'CREATE_B2B_TICKET'
    EDIT_B2B_PRICES = 'EDIT_B2B_PRICES'
    FORWARD_KVA_TO_ENDCUSTOMER = 'FORWARD_KVA_TO_ENDCUSTOMER'
    # Reports / administration
    VIEW_REPORTS = 'VIEW_REPORTS'
    VIEW_FINANCIAL_REPORTS = 'VIEW_FINANCIAL_REPORTS'
    MANAGE_USERS = 'MANAGE_USERS'
    MANAGE_PERMISSIONS = 'MANAGE_PERMISSIONS'
    MANAGE_DOCUMENT_TEMPLATES = 'MANAGE_DOCUMENT_TEMPLATES'
    MANAGE_B2B_PARTNERS = 'MANAGE_B2B_PARTNERS'
    VIEW_ALL_LOCATIONS = 'VIEW_ALL_LOCATIONS'
    MANAGE_SETTINGS = 'MANAGE_SETTINGS'


@dataclass(frozen=True)
class CatalogEntry:
    key: str
    description: str
    category: str


CATEGORY_LABELS: Dict[str, str] = {
    'dashboard': 'Dashboard',
    'intake': 'Intake',
    'tickets': 'Tickets',
    'pricing': 'Estimates & Pricing',
    'workshop': 'Workshop',
    'parts': 'Parts',
    'inventory': 'Inventory',
    'customers': 'Customers',
    'reports': 'Reports',
    'b2b': 'B2B Portal',
    'admin': 'Administration',
    'general': 'General',
}

K = PermissionKey

PERMISSION_CATALOG: List[CatalogEntry] = [
    CatalogEntry(K.VIEW_DASHBOARD.value, 'View dashboard', 'dashboard'),
    CatalogEntry(K.VIEW_INTAKE.value, 'Open ticket intake', 'intake'),
    CatalogEntry(K.CREATE_TICKET.value, 'Create repair tickets', 'intake'),
    CatalogEntry(K.VIEW_TICKET_DETAILS.value, 'View ticket details', 'tickets'),
    CatalogEntry(K.EDIT_TICKET_BASIC.value, 'Edit basic ticket data', 'tickets'),
    CatalogEntry(K.EDIT_TICKET_SENSITIVE.value, 'Edit sensitive ticket data', 'tickets'),
    CatalogEntry(K.CHANGE_TICKET_STATUS.value, 'Change ticket status', 'tickets'),
    CatalogEntry(K.HANDOVER_TICKET.value, 'Hand devices back to customers', 'tickets'),
    CatalogEntry(K.CANCEL_TICKET.value, 'Cancel tickets', 'tickets'),
    CatalogEntry(K.VIEW_KVA.value, 'View cost estimates', 'pricing'),
    CatalogEntry(K.CREATE_KVA.value, 'Create cost estimates', 'pricing'),
    CatalogEntry(K.EDIT_KVA_PRICE.value, 'Edit cost estimate prices', 'pricing'),
    CatalogEntry(K.APPROVE_KVA.value, 'Approve cost estimates', 'pricing'),
    CatalogEntry(K.REJECT_KVA.value, 'Reject cost estimates', 'pricing'),
    CatalogEntry(K.CHANGE_FINAL_PRICE.value, 'Change final price', 'pricing'),
    CatalogEntry(K.GRANT_DISCOUNT.value, 'Grant discounts', 'pricing'),
    CatalogEntry(K.VIEW_WORKSHOP.value, 'View workshop board', 'workshop'),
    CatalogEntry(K.COMPLETE_QC_CHECK.value, 'Complete quality checks', 'workshop'),
    CatalogEntry(K.VIEW_PARTS.value, 'View parts', 'parts'),
    CatalogEntry(K.MANAGE_PARTS.value, 'Manage parts', 'parts'),
    CatalogEntry(K.USE_PARTS.value, 'Book parts onto tickets', 'parts'),
    CatalogEntry(K.VIEW_INVENTORY.value, 'View inventory', 'inventory'),
    CatalogEntry(K.VIEW_STOCK_MOVEMENTS.value, 'View stock movements', 'inventory'),
    CatalogEntry(K.CREATE_PURCHASE_ORDER.value, 'Create purchase orders', 'inventory'),
    CatalogEntry(K.RECEIVE_GOODS.value, 'Receive goods', 'inventory'),
    CatalogEntry(K.CREATE_MANUAL_OUT.value, 'Book manual stock removals', 'inventory'),
    CatalogEntry(K.CREATE_TRANSFER.value, 'Transfer stock between locations', 'inventory'),
    CatalogEntry(K.MANAGE_COMPLAINTS.value, 'Manage supplier complaints', 'inventory'),
    CatalogEntry(K.APPROVE_WRITE_OFF.value, 'Approve write-offs', 'inventory'),
    CatalogEntry(K.MANAGE_SUPPLIERS.value, 'Manage suppliers', 'inventory'),
    CatalogEntry(K.VIEW_CUSTOMERS.value, 'View customers', 'customers'),
    CatalogEntry(K.EDIT_CUSTOMERS.value, 'Edit customers', 'customers'),
    CatalogEntry(K.VIEW_B2B_PORTAL.value, 'View B2B orders', 'b2b'),
    CatalogEntry(K.CREATE_B2B_TICKET.value, 'Create tickets for B2B partners', 'b2b'),
    CatalogEntry(K.EDIT_B2B_PRICES.value, 'Edit B2B prices', 'b2b'),
    CatalogEntry(K.FORWARD_KVA_TO_ENDCUSTOMER.value, 'Forward estimates to end customers', 'b2b'),
    CatalogEntry(K.VIEW_REPORTS.value, 'View reports', 'reports'),
    CatalogEntry(K.VIEW_FINANCIAL_REPORTS.value, 'View financial reports', 'reports'),
    CatalogEntry(K.MANAGE_USERS.value, 'Manage users', 'admin'),
    CatalogEntry(K.MANAGE_PERMISSIONS.value, 'Manage role permissions', 'admin'),
    CatalogEntry(K.MANAGE_DOCUMENT_TEMPLATES.value, 'Manage document templates', 'admin'),
    CatalogEntry(K.MANAGE_B2B_PARTNERS.value, 'Manage B2B partners', 'admin'),
    CatalogEntry(K.VIEW_ALL_LOCATIONS.value, 'View all locations', 'admin'),
    CatalogEntry(K.MANAGE_SETTINGS.value, 'Manage settings', 'admin'),
]

ALL_PERMISSION_KEYS = [entry.key for entry in PERMISSION_CATALOG]

# Default grants installed by the seed script. ADMIN is absent on purpose:
# its permissions are implicit and never stored.
ROLE_PRESETS: Dict[str, List[str]] = {
    'COUNTER': [
        'VIEW_DASHBOARD', 'VIEW_INTAKE', 'CREATE_TICKET', 'VIEW_TICKET_DETAILS', 'EDIT_TICKET_BASIC',
        'HANDOVER_TICKET', 'VIEW_KVA', 'CREATE_KVA', 'VIEW_CUSTOMERS', 'EDIT_CUSTOMERS', 'VIEW_PARTS',
    ],
    'TECHNICIAN': [
        'VIEW_DASHBOARD', 'VIEW_TICKET_DETAILS', 'CHANGE_TICKET_STATUS', 'VIEW_WORKSHOP', 'VIEW_KVA',
        'CREATE_KVA', 'VIEW_PARTS', 'USE_PARTS', 'COMPLETE_QC_CHECK', 'VIEW_INVENTORY',
    ],
    'ACCOUNTING': [
        'VIEW_DASHBOARD', 'VIEW_TICKET_DETAILS', 'VIEW_KVA', 'VIEW_CUSTOMERS', 'VIEW_REPORTS',
        'VIEW_FINANCIAL_REPORTS', 'VIEW_INVENTORY', 'VIEW_STOCK_MOVEMENTS',
    ],
    'BRANCH_MANAGER': [
        'VIEW_DASHBOARD', 'VIEW_INTAKE', 'CREATE_TICKET', 'VIEW_TICKET_DETAILS', 'EDIT_TICKET_BASIC',
        'EDIT_TICKET_SENSITIVE', 'CHANGE_TICKET_STATUS', 'HANDOVER_TICKET', 'CANCEL_TICKET',
        'VIEW_KVA', 'CREATE_KVA', 'EDIT_KVA_PRICE', 'APPROVE_KVA', 'REJECT_KVA', 'CHANGE_FINAL_PRICE',
        'GRANT_DISCOUNT', 'VIEW_WORKSHOP', 'VIEW_PARTS', 'MANAGE_PARTS', 'USE_PARTS',
        'VIEW_INVENTORY', 'VIEW_STOCK_MOVEMENTS', 'CREATE_PURCHASE_ORDER', 'RECEIVE_GOODS',
        'CREATE_TRANSFER', 'MANAGE_COMPLAINTS', 'VIEW_CUSTOMERS', 'EDIT_CUSTOMERS', 'VIEW_REPORTS',
    ],
    'PARTNER_OWNER': ['VIEW_B2B_PORTAL', 'CREATE_B2B_TICKET', 'EDIT_B2B_PRICES', 'FORWARD_KVA_TO_ENDCUSTOMER'],
    'PARTNER_ADMIN': ['VIEW_B2B_PORTAL', 'CREATE_B2B_TICKET', 'EDIT_B2B_PRICES', 'FORWARD_KVA_TO_ENDCUSTOMER'],
    'PARTNER_USER': ['VIEW_B2B_PORTAL', 'CREATE_B2B_TICKET'],
}


class UnknownPermission(ValueError):
    pass


def decode_permission_key(raw) -> PermissionKey:
    if isinstance(raw, PermissionKey):
        return raw
    try:
        return PermissionKey(str(raw).strip().upper())
    except ValueError:
        raise UnknownPermission(f'Unknown permission key: {raw!r}') from None


__all__ = [
    'PermissionKey', 'CatalogEntry', 'CATEGORY_LABELS', 'PERMISSION_CATALOG', 'ALL_PERMISSION_KEYS',
    'ROLE_PRESETS', 'UnknownPermission', 'decode_permission_key',
]
