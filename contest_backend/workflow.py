"""
Submission workflow: payment intent creation, payment re-verification and
entry persistence.

A submission moves through ``Received -> Validated -> PaymentVerified ->
Persisted``. Any failed step rejects it by raising one of the API errors with
``reason`` set, and nothing is written after a rejection. The client's claim
that it paid is never trusted: the intent is always fetched again from the
gateway, and the fees are rebuilt from the intent's own metadata.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import NoReturn, Optional

from contest_backend.db import AnyEntry, EntryRecord, EntryStore
from contest_backend.errors import (
    DependencyUnavailable,
    DuplicateSubmission,
    NotFound,
    PaymentNotCompleted,
    ValidationError,
)
from contest_backend.fees import (
    CATEGORY_FEES,
    FeeBreakdown,
    calculate_fees,
    fees_from_metadata,
    to_minor_units,
)
from contest_backend.files import FileStore, UploadedFile, retrieval_url, validate_upload
from contest_backend.gateway import PAYMENT_FAILED_EVENT, GatewayEvent, PaymentGateway
from contest_backend.schemas import EntryType, PaymentStatus, parse_entry

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PAYMENT_VERIFIED = "payment-verified"
    PERSISTED = "persisted"
    REJECTED = "rejected"


REQUIRED_FIELDS = {
    "user_id": "userId",
    "category": "category",
    "entry_type": "entryType",
    "title": "title",
    "payment_intent_id": "paymentIntentId",
}


@dataclass
class SubmissionForm:
    user_id: Optional[str] = None
    category: Optional[str] = None
    entry_type: Optional[str] = None
    title: Optional[str] = None
    payment_intent_id: Optional[str] = None
    description: Optional[str] = None
    text_content: Optional[str] = None
    video_url: Optional[str] = None


@dataclass
class SubmissionResult:
    entry_id: str
    created: bool
    state: SubmissionState = SubmissionState.PERSISTED


@dataclass
class PaymentQuote:
    payment_intent_id: str
    client_secret: str
    fees: FeeBreakdown


class SubmissionWorkflow:
    def __init__(
        self,
        store: EntryStore,
        gateway: PaymentGateway,
        files: FileStore,
        *,
        max_upload_bytes: int,
        currency: str = "usd",
        api_prefix: str = "/api",
    ):
        self.store = store
        self.gateway = gateway
        self.files = files
        self.max_upload_bytes = max_upload_bytes
        self.currency = currency
        self.api_prefix = api_prefix

    def create_payment_intent(self, category: str, entry_type: str) -> PaymentQuote:
        fees = calculate_fees(category)
        metadata = {
            "category": category,
            "entryType": EntryType(entry_type).value,
            "entryFee": fees.entry_fee,
            "surcharge": fees.surcharge,
        }
        logger.info(
            "Creating payment intent for %s/%s: %d cents",
            category,
            metadata["entryType"],
            to_minor_units(fees.total_amount),
        )
        intent = self.gateway.create_intent(
            to_minor_units(fees.total_amount), self.currency, metadata
        )
        if not intent.client_secret:
            raise DependencyUnavailable("Payment gateway returned no client secret")
        return PaymentQuote(
            payment_intent_id=intent.id, client_secret=intent.client_secret, fees=fees
        )

    def submit(
        self, form: SubmissionForm, upload: Optional[UploadedFile] = None
    ) -> SubmissionResult:
        logger.info(
            "Submission %s for %s: %s",
            form.payment_intent_id,
            form.user_id,
            SubmissionState.RECEIVED.value,
        )
        self._validate(form, upload)
        draft = self._draft(form)
        logger.info(
            "Submission %s: %s", form.payment_intent_id, SubmissionState.VALIDATED.value
        )

        existing = self.store.find_by_payment_intent(form.payment_intent_id)
        if existing:
            return self._resolve_existing(existing, form)

        fees = self._verify_payment(form)
        logger.info(
            "Submission %s: %s",
            form.payment_intent_id,
            SubmissionState.PAYMENT_VERIFIED.value,
        )

        record, created = self._persist(draft, upload, fees)
        if not created:
            return self._resolve_existing(record, form)
        logger.info(
            "Submission %s: %s as entry %s",
            form.payment_intent_id,
            SubmissionState.PERSISTED.value,
            record.entry_id,
        )
        return SubmissionResult(entry_id=record.entry_id, created=True)

    def handle_notification(self, payload: bytes, signature: Optional[str]) -> GatewayEvent:
        event = self.gateway.verify_notification(payload, signature)
        if event.type == PAYMENT_FAILED_EVENT and event.object_id:
            if self.store.mark_payment_failed(event.object_id):
                logger.info("Marked entry for %s as failed", event.object_id)
            else:
                logger.info("No entry for failed payment %s", event.object_id)
        else:
            logger.debug("Ignoring webhook event %s", event.type)
        return event

    def _validate(self, form: SubmissionForm, upload: Optional[UploadedFile]) -> None:
        missing = [
            alias
            for name, alias in REQUIRED_FIELDS.items()
            if not (getattr(form, name) or "").strip()
        ]
        if missing:
            self._reject(
                ValidationError(
                    "Missing required fields",
                    reason="missing-fields",
                    details={"required": list(REQUIRED_FIELDS.values()), "missing": missing},
                ),
                form,
            )
        if form.category not in CATEGORY_FEES:
            self._reject(
                ValidationError(
                    "Invalid category",
                    reason="invalid-entry",
                    details={"validCategories": list(CATEGORY_FEES)},
                ),
                form,
            )
        if form.entry_type not in {member.value for member in EntryType}:
            self._reject(
                ValidationError(
                    "Invalid entry type",
                    reason="invalid-entry",
                    details={"validEntryTypes": [m.value for m in EntryType]},
                ),
                form,
            )
        if form.entry_type == EntryType.PITCH_DECK.value:
            if upload is None:
                self._reject(
                    ValidationError(
                        "File required for pitch-deck entries", reason="file-invalid"
                    ),
                    form,
                )
            try:
                validate_upload(upload, self.max_upload_bytes)
            except ValidationError as exc:
                self._reject(exc, form)

    def _verify_payment(self, form: SubmissionForm) -> FeeBreakdown:
        try:
            intent = self.gateway.retrieve_intent(form.payment_intent_id)
        except NotFound as exc:
            self._reject(
                PaymentNotCompleted("not_found", reason="payment-incomplete"), form, exc
            )
        except DependencyUnavailable as exc:
            exc.reason = "payment-incomplete"
            self._reject(exc, form)

        if not intent.succeeded:
            self._reject(
                PaymentNotCompleted(intent.status, reason="payment-incomplete"), form
            )

        paid_for = (intent.metadata.get("category"), intent.metadata.get("entryType"))
        if paid_for != (form.category, form.entry_type):
            self._reject(
                ValidationError(
                    "Payment was made for a different category or entry type",
                    reason="payment-incomplete",
                    details={"paidCategory": paid_for[0], "paidEntryType": paid_for[1]},
                ),
                form,
            )
        return fees_from_metadata(intent.metadata)

    def _draft(self, form: SubmissionForm) -> AnyEntry:
        """
        Validate the entry before the gateway is asked anything, using the
        fee table; fees and payment status are replaced once payment is verified.
        """
        fees = calculate_fees(form.category)
        data = {
            "user_id": form.user_id,
            "category": form.category,
            "entry_type": form.entry_type,
            "title": form.title,
            "entry_fee": fees.entry_fee,
            "surcharge": fees.surcharge,
            "total_amount": fees.total_amount,
            "payment_intent_id": form.payment_intent_id,
        }
        if form.description:
            data["description"] = form.description
        if form.entry_type == EntryType.TEXT.value:
            data["text_content"] = form.text_content
        elif form.entry_type == EntryType.VIDEO.value:
            data["video_url"] = form.video_url
        else:
            data["file_url"] = retrieval_url(self.api_prefix, form.payment_intent_id)
        try:
            return parse_entry(data)
        except ValidationError as exc:
            self._reject(exc, form)

    def _persist(
        self,
        draft: AnyEntry,
        upload: Optional[UploadedFile],
        fees: FeeBreakdown,
    ) -> tuple[EntryRecord, bool]:
        update = {
            "entry_fee": fees.entry_fee,
            "surcharge": fees.surcharge,
            "total_amount": fees.total_amount,
            "payment_status": PaymentStatus.SUCCEEDED.value,
        }
        stored: dict = {}
        if upload is not None and draft.entry_type == EntryType.PITCH_DECK.value:
            stored = self.files.store(draft.payment_intent_id, upload)
            update.update(stored)
        try:
            record, created = self.store.insert_if_absent(draft.model_copy(update=update))
        except Exception:
            if stored:
                self.files.discard(stored)
            raise
        if not created and stored:
            # Another request persisted this intent first; its file stays.
            self.files.discard(stored)
        return record, created

    def _resolve_existing(
        self, record: EntryRecord, form: SubmissionForm
    ) -> SubmissionResult:
        if record.entry.user_id != form.user_id:
            self._reject(DuplicateSubmission(reason="duplicate-intent"), form)
        logger.info(
            "Submission %s already persisted as entry %s",
            form.payment_intent_id,
            record.entry_id,
        )
        return SubmissionResult(entry_id=record.entry_id, created=False)

    @staticmethod
    def _reject(
        error: Exception, form: SubmissionForm, cause: Optional[Exception] = None
    ) -> NoReturn:
        logger.info(
            "Submission %s: %s (%s)",
            form.payment_intent_id,
            SubmissionState.REJECTED.value,
            getattr(error, "reason", None) or error,
        )
        if cause is not None:
            raise error from cause
        raise error
