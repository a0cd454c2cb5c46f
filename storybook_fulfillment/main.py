"""
Application wiring for the fulfillment service.

Run with an ASGI server using the factory, e.g.
``uvicorn --factory storybook_fulfillment.main:create_app``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storybook_fulfillment.api.routes import build_orders_router, build_webhook_router
from storybook_fulfillment.api.schemas import ErrorEnvelope
from storybook_fulfillment.asset_resolution import AssetResolver
from storybook_fulfillment.common.errors import ApiError
from storybook_fulfillment.common.http import build_session
from storybook_fulfillment.common.settings import Settings, load_settings
from storybook_fulfillment.fulfillment import FulfillmentDispatcher
from storybook_fulfillment.integrations import (
    ArtifactStorage,
    CreationSource,
    EmailFunctionNotifier,
    InMemoryCreationSource,
    InMemoryStorage,
    InMemoryStorageAdapter,
    LoggingNotifier,
    LuluPrintProvider,
    Notifier,
    PostgrestClient,
    SupabaseCreationSource,
    SupabaseStorage,
)
from storybook_fulfillment.orders import InMemoryOrderRepository, OrderRepository, SupabaseOrderRepository
from storybook_fulfillment.pdf_generation import DocumentAssembler, StorybookPageCompositor
from storybook_fulfillment.reconciliation import ProviderStatusMap, ReconciliationListener

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    repository: OrderRepository
    creations: CreationSource
    storage: ArtifactStorage
    resolver: AssetResolver
    notifier: Notifier
    dispatcher: FulfillmentDispatcher
    listener: ReconciliationListener


def build_services(settings: Settings) -> Services:
    repository: OrderRepository
    creations: CreationSource
    storage: ArtifactStorage
    notifier: Notifier
    asset_session: requests.Session | None = None

    if settings.uses_supabase:
        client = PostgrestClient(
            base_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            timeout=settings.request_timeout_seconds,
            retries=settings.asset_fetch_retries,
        )
        repository = SupabaseOrderRepository(client)
        creations = SupabaseCreationSource(client)
        storage = SupabaseStorage(
            base_url=settings.supabase_url,
            service_role_key=settings.supabase_service_role_key,
            timeout=settings.request_timeout_seconds,
            retries=settings.asset_fetch_retries,
        )
        notifier = EmailFunctionNotifier(
            endpoint=settings.notification_endpoint,
            service_role_key=settings.supabase_service_role_key,
        )
        logger.info("Using Supabase-backed order, creation and artifact stores")
    else:
        repository = InMemoryOrderRepository()
        creations = InMemoryCreationSource()
        local_storage = InMemoryStorage()
        asset_session = build_session(retries=settings.asset_fetch_retries)
        asset_session.mount(local_storage.base_url + "/", InMemoryStorageAdapter(local_storage))
        storage = local_storage
        notifier = LoggingNotifier()
        logger.info("Using in-memory stores (SUPABASE_URL not configured)")

    resolver = AssetResolver(
        storage,
        ttl_seconds=settings.asset_url_ttl_seconds,
        session=asset_session,
        timeout=settings.request_timeout_seconds,
        retries=settings.asset_fetch_retries,
    )
    compositor = StorybookPageCompositor(
        fetch_image=resolver.fetch_bytes,
        request_timeout=settings.request_timeout_seconds,
    )
    print_provider = LuluPrintProvider(
        api_url=settings.provider_api_url,
        client_key=settings.provider_client_key,
        client_secret=settings.provider_client_secret,
        timeout=settings.request_timeout_seconds,
        retries=settings.asset_fetch_retries,
    )
    dispatcher = FulfillmentDispatcher(
        repository=repository,
        creations=creations,
        storage=storage,
        resolver=resolver,
        assembler=DocumentAssembler(compositor),
        print_provider=print_provider,
        notifier=notifier,
        artifact_bucket=settings.artifact_bucket,
        drawings_bucket=settings.drawings_bucket,
        page_images_bucket=settings.page_images_bucket,
        download_ttl_seconds=settings.download_url_ttl_seconds,
        print_source_ttl_seconds=settings.print_source_url_ttl_seconds,
        max_attempts=settings.fulfillment_max_attempts,
        lease_seconds=settings.processing_lease_seconds,
    )
    listener = ReconciliationListener(
        repository,
        ProviderStatusMap.from_yaml(settings.provider_status_map_path),
        notifier=notifier,
        creations=creations,
    )
    return Services(
        repository=repository,
        creations=creations,
        storage=storage,
        resolver=resolver,
        notifier=notifier,
        dispatcher=dispatcher,
        listener=listener,
    )


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    payload = ErrorEnvelope(error={"code": code, "message": message})
    return JSONResponse(status_code=status_code, content=payload.model_dump())


def create_app(settings: Settings | None = None, services: Services | None = None) -> FastAPI:
    settings = settings or load_settings()
    services = services or build_services(settings)

    app = FastAPI(title="Storybook Fulfillment", version="0.1.0")
    app.state.services = services

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error("API error %s: %s", exc.code, exc.message, exc_info=exc)
        else:
            logger.warning("API error %s: %s", exc.code, exc.message)
        return _error_response(exc.status_code, exc.code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error_response(422, "VALIDATION_ERROR", "Request validation failed")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled API exception", exc_info=exc)
        message = "Unexpected server error"
        if settings.environment not in {"production", "prod"}:
            message = str(exc) or message
        return _error_response(500, "INTERNAL_ERROR", message)

    app.include_router(
        build_webhook_router(
            services.listener,
            signing_secret=settings.provider_client_secret,
            require_signature=settings.environment in {"production", "prod"},
        )
    )
    app.include_router(build_orders_router(services.dispatcher))

    @app.get("/healthz", tags=["health"])
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "provider_environment": settings.provider_environment}

    return app
