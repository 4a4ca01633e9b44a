"""
HTTP routes for the contest entry API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from starlette.concurrency import run_in_threadpool

from contest_backend.dependencies import (
    Backends,
    get_queries,
    get_workflow,
    request_backends,
)
from contest_backend.files import UploadedFile, content_disposition
from contest_backend.queries import EntryQueries
from contest_backend.schemas import (
    DeleteEntryRequest,
    DeleteEntryResponse,
    EntryResponse,
    HealthResponse,
    PaymentIntentRequest,
    PaymentIntentResponse,
    SubmitEntryResponse,
    WebhookResponse,
)
from contest_backend.workflow import SubmissionForm, SubmissionWorkflow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(backends: Backends = Depends(request_backends)):
    database_ok = backends.store.ping()
    gateway_ok = bool(getattr(backends.gateway, "initialized", False))
    return HealthResponse(
        status="OK" if database_ok and gateway_ok else "DEGRADED",
        message="Server is running",
        environment=backends.settings.deployment_label,
        timestamp=datetime.now(timezone.utc),
        database="connected" if database_ok else "disconnected",
        gateway="initialized" if gateway_ok else "not initialized",
    )


@router.post("/payment-intents", response_model=PaymentIntentResponse)
@router.post(
    "/create-payment-intent",
    response_model=PaymentIntentResponse,
    include_in_schema=False,
)
def create_payment_intent(
    payload: PaymentIntentRequest,
    workflow: SubmissionWorkflow = Depends(get_workflow),
):
    quote = workflow.create_payment_intent(payload.category, payload.entry_type.value)
    return PaymentIntentResponse(
        client_secret=quote.client_secret,
        payment_intent_id=quote.payment_intent_id,
        entry_fee=quote.fees.entry_fee,
        surcharge=quote.fees.surcharge,
        total_amount=quote.fees.total_amount,
    )


@router.post("/entries", response_model=SubmitEntryResponse, status_code=201)
async def submit_entry(
    response: Response,
    user_id: Optional[str] = Form(None, alias="userId"),
    category: Optional[str] = Form(None),
    entry_type: Optional[str] = Form(None, alias="entryType"),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    text_content: Optional[str] = Form(None, alias="textContent"),
    video_url: Optional[str] = Form(None, alias="videoUrl"),
    payment_intent_id: Optional[str] = Form(None, alias="paymentIntentId"),
    file: Optional[UploadFile] = File(None),
    workflow: SubmissionWorkflow = Depends(get_workflow),
):
    upload = None
    if file is not None and file.filename:
        upload = UploadedFile(
            filename=file.filename,
            content_type=file.content_type or "application/octet-stream",
            data=await file.read(),
        )
        logger.info(
            "Upload received: %s (%s, %d bytes)",
            upload.filename,
            upload.content_type,
            upload.size,
        )
    form = SubmissionForm(
        user_id=user_id,
        category=category,
        entry_type=entry_type,
        title=title,
        description=description,
        text_content=text_content,
        video_url=video_url,
        payment_intent_id=payment_intent_id,
    )
    result = await run_in_threadpool(workflow.submit, form, upload)
    if not result.created:
        response.status_code = 200
        return SubmitEntryResponse(
            message="Entry already submitted", entry_id=result.entry_id
        )
    return SubmitEntryResponse(
        message="Entry submitted successfully", entry_id=result.entry_id
    )


@router.get("/entries/{user_id}", response_model=list[EntryResponse])
def list_entries(user_id: str, queries: EntryQueries = Depends(get_queries)):
    return queries.list_for_user(user_id)


@router.get("/entry/{entry_id}", response_model=EntryResponse)
def get_entry(entry_id: str, queries: EntryQueries = Depends(get_queries)):
    return queries.get(entry_id)


@router.delete("/entries/{entry_id}", response_model=DeleteEntryResponse)
def delete_entry(
    entry_id: str,
    payload: DeleteEntryRequest,
    queries: EntryQueries = Depends(get_queries),
):
    queries.delete(entry_id, payload.user_id)
    return DeleteEntryResponse(message="Entry deleted successfully")


@router.get("/files/{payment_intent_id}")
@router.get("/file/{payment_intent_id}", include_in_schema=False)
def download_file(
    payment_intent_id: str, queries: EntryQueries = Depends(get_queries)
):
    payload = queries.fetch_file(payment_intent_id)
    return Response(
        content=payload.data,
        media_type=payload.file_type,
        headers={"Content-Disposition": content_disposition(payload.file_name)},
    )


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request, workflow: SubmissionWorkflow = Depends(get_workflow)
):
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    await run_in_threadpool(workflow.handle_notification, payload, signature)
    return WebhookResponse(received=True)
