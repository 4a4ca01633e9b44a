"""
Dependency wiring for the FastAPI app.

Backends are built once by ``init_backends`` and handed to the app, which
keeps them on ``app.state``; route dependencies read them from the request's
app instead of module globals. ``get_backends``/``reset_backends`` cover
scripts that run outside a request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from contest_backend.config import Settings, get_settings
from contest_backend.db import EntryStore, InMemoryEntryStore, SqlEntryStore
from contest_backend.files import FileStore, InlineFileStore, ObjectFileStore
from contest_backend.gateway import (
    InMemoryPaymentGateway,
    PaymentGateway,
    StripePaymentGateway,
)
from contest_backend.queries import EntryQueries
from contest_backend.storage import InMemoryStorageClient, S3StorageClient
from contest_backend.workflow import SubmissionWorkflow

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    settings: Settings
    store: EntryStore
    gateway: PaymentGateway
    files: FileStore

    def workflow(self) -> SubmissionWorkflow:
        return SubmissionWorkflow(
            self.store,
            self.gateway,
            self.files,
            max_upload_bytes=self.settings.max_upload_bytes,
            currency=self.settings.stripe_currency,
            api_prefix=self.settings.api_prefix,
        )

    def queries(self) -> EntryQueries:
        return EntryQueries(self.store, self.files, api_prefix=self.settings.api_prefix)


_backends: Optional[Backends] = None


def _build_store(settings: Settings) -> EntryStore:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.warning("Using in-memory entry store; data will not persist")
        return InMemoryEntryStore()
    return SqlEntryStore(
        settings.database_url, connect_timeout=settings.database_timeout_seconds
    )


def _build_gateway(settings: Settings) -> PaymentGateway:
    if settings.use_in_memory_backends or not settings.stripe_secret_key:
        logger.warning("Using in-memory payment gateway")
        return InMemoryPaymentGateway(webhook_secret=settings.stripe_webhook_secret)
    return StripePaymentGateway(
        settings.stripe_secret_key,
        settings.stripe_webhook_secret,
        timeout_seconds=settings.gateway_timeout_seconds,
    )


def _build_files(settings: Settings) -> FileStore:
    if settings.file_storage_strategy == "inline":
        return InlineFileStore(settings.api_prefix)
    if settings.use_in_memory_backends or not settings.s3_bucket:
        storage = InMemoryStorageClient()
    else:
        storage = S3StorageClient(
            bucket=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            timeout_seconds=settings.gateway_timeout_seconds,
        )
    return ObjectFileStore(storage, settings.api_prefix)


def init_backends(settings: Optional[Settings] = None) -> Backends:
    """Build the backends for this process and remember them."""
    global _backends
    settings = settings or get_settings()
    _backends = Backends(
        settings=settings,
        store=_build_store(settings),
        gateway=_build_gateway(settings),
        files=_build_files(settings),
    )
    logger.info(
        "Backends ready: store=%s gateway=%s files=%s",
        type(_backends.store).__name__,
        type(_backends.gateway).__name__,
        type(_backends.files).__name__,
    )
    return _backends


def get_backends() -> Backends:
    """Return the process backends, building them on first use."""
    if _backends is None:
        return init_backends()
    return _backends


def reset_backends() -> None:
    global _backends
    _backends = None


def request_backends(request: Request) -> Backends:
    return request.app.state.backends


def get_workflow(request: Request) -> SubmissionWorkflow:
    return request_backends(request).workflow()


def get_queries(request: Request) -> EntryQueries:
    return request_backends(request).queries()
