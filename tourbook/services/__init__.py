"""Service package public API definitions.

Service implementations import the HTTP clients, and the clients import
``tourbook.services.exceptions``. Importing the implementations eagerly here
would make that a circular import, so they are resolved lazily on first
attribute access.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AvailabilityService",
    "CatalogServiceManager",
    "DepositConfirmationOrchestrator",
    "InvoiceService",
    "NotificationService",
    "OrderService",
    "PaymentService",
    "RefundService",
    "ScheduleService",
    "TeamService",
    "UserService",
]

_SERVICE_MODULES = {
    "AvailabilityService": "availability",
    "CatalogServiceManager": "catalog",
    "DepositConfirmationOrchestrator": "deposits",
    "InvoiceService": "invoices",
    "NotificationService": "notifications",
    "OrderService": "orders",
    "PaymentService": "payments",
    "RefundService": "refunds",
    "ScheduleService": "schedules",
    "TeamService": "teams",
    "UserService": "users",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .availability import AvailabilityService as AvailabilityService
    from .catalog import CatalogServiceManager as CatalogServiceManager
    from .deposits import DepositConfirmationOrchestrator as DepositConfirmationOrchestrator
    from .invoices import InvoiceService as InvoiceService
    from .notifications import NotificationService as NotificationService
    from .orders import OrderService as OrderService
    from .payments import PaymentService as PaymentService
    from .refunds import RefundService as RefundService
    from .schedules import ScheduleService as ScheduleService
    from .teams import TeamService as TeamService
    from .users import UserService as UserService
