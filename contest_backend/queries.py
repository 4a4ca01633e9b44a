"""
Read and delete operations on entries, plus deck file retrieval.
"""

from __future__ import annotations

import logging

from contest_backend.db import EntryRecord, EntryStore
from contest_backend.errors import Forbidden, NotFound
from contest_backend.files import FilePayload, FileStore, retrieval_url
from contest_backend.schemas import DeckEntry, EntryResponse

logger = logging.getLogger(__name__)


class EntryQueries:
    def __init__(self, store: EntryStore, files: FileStore, *, api_prefix: str = "/api"):
        self.store = store
        self.files = files
        self.api_prefix = api_prefix

    def to_response(self, record: EntryRecord) -> EntryResponse:
        """Drop inline file bytes; decks always expose the retrieval URL instead."""
        data = record.as_dict()
        data.pop("file_data", None)
        data.pop("file_path", None)
        if isinstance(record.entry, DeckEntry) and (
            record.entry.file_data or record.entry.file_path
        ):
            data["file_url"] = retrieval_url(
                self.api_prefix, record.entry.payment_intent_id
            )
        return EntryResponse.model_validate(data)

    def list_for_user(self, user_id: str) -> list[EntryResponse]:
        records = self.store.find_by_owner(user_id)
        logger.info("Found %d entries for user %s", len(records), user_id)
        return [self.to_response(record) for record in records]

    def get(self, entry_id: str) -> EntryResponse:
        return self.to_response(self.store.find_by_id(entry_id))

    def delete(self, entry_id: str, requesting_user_id: str) -> None:
        record = self.store.find_by_id(entry_id)
        if record.entry.user_id != requesting_user_id:
            raise Forbidden("Not authorized to delete this entry")
        # Externally stored deck bytes are left in place.
        self.store.delete_by_id(entry_id)
        logger.info("Entry %s deleted by %s", entry_id, requesting_user_id)

    def fetch_file(self, payment_intent_id: str) -> FilePayload:
        record = self.store.find_by_payment_intent(payment_intent_id)
        if record is None or not isinstance(record.entry, DeckEntry):
            raise NotFound("File not found")
        payload = self.files.load(record.entry)
        if payload is None:
            raise NotFound("File not found")
        return payload
