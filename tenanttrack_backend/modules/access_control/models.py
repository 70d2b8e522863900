"""Capabilities and the role-to-capability table."""

import enum

from ..auth.models import RoleName


class Capability(str, enum.Enum):
    """Operations a role may perform, independent of which property."""

    SUBMIT_APPLICATION = "submit_application"
    MANAGE_LEASES = "manage_leases"
    VIEW_LEDGER = "view_ledger"
    PAY_RENT = "pay_rent"
    SUBMIT_MAINTENANCE = "submit_maintenance"
    MANAGE_MAINTENANCE = "manage_maintenance"
    WORK_MAINTENANCE = "work_maintenance"
    CANCEL_OWN_MAINTENANCE = "cancel_own_maintenance"
    OPERATE_NOTIFICATIONS = "operate_notifications"


ROLE_CAPABILITIES: dict[RoleName, frozenset[Capability]] = {
    RoleName.ADMIN: frozenset(Capability),
    RoleName.LANDLORD: frozenset(
        {
            Capability.MANAGE_LEASES,
            Capability.VIEW_LEDGER,
            Capability.MANAGE_MAINTENANCE,
            Capability.WORK_MAINTENANCE,
            Capability.SUBMIT_APPLICATION,
            Capability.SUBMIT_MAINTENANCE,
        }
    ),
    RoleName.TENANT: frozenset(
        {
            Capability.SUBMIT_APPLICATION,
            Capability.VIEW_LEDGER,
            Capability.PAY_RENT,
            Capability.SUBMIT_MAINTENANCE,
            Capability.CANCEL_OWN_MAINTENANCE,
        }
    ),
    RoleName.STAFF: frozenset({Capability.WORK_MAINTENANCE}),
}
