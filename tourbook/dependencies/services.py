from __future__ import annotations

from functools import lru_cache

from fastapi import Depends

from tourbook.clients.invoicing import InvoicingClient
from tourbook.clients.messaging import EmailClient, WhatsAppClient
from tourbook.clients.payments import PaymentGatewayClient
from tourbook.config import Settings, get_settings
from tourbook.services import (
    AvailabilityService,
    CatalogServiceManager,
    DepositConfirmationOrchestrator,
    InvoiceService,
    NotificationService,
    OrderService,
    PaymentService,
    RefundService,
    ScheduleService,
    TeamService,
    UserService,
)
from tourbook.services.store import DocumentStore, get_store


@lru_cache(maxsize=1)
def get_payment_client_cached() -> PaymentGatewayClient:
    settings = get_settings()
    return PaymentGatewayClient(
        str(settings.mercadopago_base_url),
        access_token=settings.mercadopago_access_token,
        timeout=settings.payment_timeout,
        app_url=settings.app_url,
    )


@lru_cache(maxsize=1)
def get_whatsapp_client_cached() -> WhatsAppClient:
    settings = get_settings()
    return WhatsAppClient(
        settings.twilio_account_sid,
        settings.twilio_auth_token,
        settings.twilio_whatsapp_number,
        timeout=settings.notification_timeout,
    )


@lru_cache(maxsize=1)
def get_email_client_cached() -> EmailClient:
    settings = get_settings()
    return EmailClient(
        settings.smtp_host,
        settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        sender=settings.smtp_from,
        timeout=settings.notification_timeout,
    )


@lru_cache(maxsize=1)
def get_invoicing_client_cached() -> InvoicingClient:
    settings = get_settings()
    return InvoicingClient(
        str(settings.nfe_api_url),
        token=settings.nfe_api_token,
        company_cnpj=settings.company_cnpj,
        timeout=settings.invoice_timeout,
    )


def get_document_store() -> DocumentStore:
    return get_store()


def get_payment_client() -> PaymentGatewayClient:
    return get_payment_client_cached()


def get_notification_service(
    settings: Settings = Depends(get_settings),
) -> NotificationService:
    return NotificationService(
        get_whatsapp_client_cached(),
        get_email_client_cached(),
        country_code=settings.default_country_code,
    )


def get_deposit_orchestrator(
    store: DocumentStore = Depends(get_document_store),
    gateway: PaymentGatewayClient = Depends(get_payment_client),
    notifications: NotificationService = Depends(get_notification_service),
    settings: Settings = Depends(get_settings),
) -> DepositConfirmationOrchestrator:
    return DepositConfirmationOrchestrator(
        store,
        gateway,
        notifications,
        refund_on_slot_conflict=settings.refund_on_slot_conflict,
    )


def get_payment_service(
    store: DocumentStore = Depends(get_document_store),
    gateway: PaymentGatewayClient = Depends(get_payment_client),
    notifications: NotificationService = Depends(get_notification_service),
    orchestrator: DepositConfirmationOrchestrator = Depends(get_deposit_orchestrator),
    settings: Settings = Depends(get_settings),
) -> PaymentService:
    return PaymentService(
        store,
        gateway,
        notifications,
        orchestrator,
        webhook_secret=settings.mercadopago_webhook_secret,
        production=settings.is_production,
    )


def get_refund_service(
    store: DocumentStore = Depends(get_document_store),
    gateway: PaymentGatewayClient = Depends(get_payment_client),
    notifications: NotificationService = Depends(get_notification_service),
) -> RefundService:
    return RefundService(store, gateway, notifications)


def get_availability_service(
    store: DocumentStore = Depends(get_document_store),
) -> AvailabilityService:
    return AvailabilityService(store)


def get_schedule_service(
    store: DocumentStore = Depends(get_document_store),
) -> ScheduleService:
    return ScheduleService(store)


def get_order_service(
    store: DocumentStore = Depends(get_document_store),
) -> OrderService:
    return OrderService(store)


def get_team_service(
    store: DocumentStore = Depends(get_document_store),
) -> TeamService:
    return TeamService(store)


def get_catalog_service(
    store: DocumentStore = Depends(get_document_store),
) -> CatalogServiceManager:
    return CatalogServiceManager(store)


def get_user_service(
    store: DocumentStore = Depends(get_document_store),
) -> UserService:
    return UserService(store)


def get_invoice_service(
    store: DocumentStore = Depends(get_document_store),
    notifications: NotificationService = Depends(get_notification_service),
) -> InvoiceService:
    return InvoiceService(store, get_invoicing_client_cached(), notifications)
