"""
History store over Firestore.

Append-only collection of conversion records; reads filter by the verified
email and come back newest first.
"""

import logging
import time
from typing import Any, Callable, List

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from converter.errors import StoreUnavailable
from converter.models import ConversionRecord, HistoryEntry

logger = logging.getLogger(__name__)


def now_millis() -> int:
    """Current time in milliseconds since epoch."""
    return int(time.time() * 1000)


class FirestoreHistoryStore:
    """History store backed by a Firestore collection.

    No update or delete operations are exposed; records are immutable once
    written.
    """

    def __init__(
        self,
        client: Any,
        collection: str = "history",
        clock: Callable[[], int] = now_millis,
    ):
        """Initialize the store.

        Args:
            client: Firestore client (``firebase_admin.firestore.client()``)
            collection: Collection holding the records
            clock: Source of write timestamps in milliseconds
        """
        self.client = client
        self.collection = collection
        self.clock = clock

    @property
    def _ref(self):
        return self.client.collection(self.collection)

    def append(self, email: str, entry: HistoryEntry) -> ConversionRecord:
        """Append one record for ``email`` stamped with the current time.

        Returns:
            The record as written

        Raises:
            StoreUnavailable: If the Firestore call fails
        """
        record = ConversionRecord.from_entry(email, entry, self.clock())
        try:
            self._ref.add(record.to_document())
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Failed to save history for %s", email)
            raise StoreUnavailable() from exc
        return record

    def list_by_identity(self, email: str) -> List[ConversionRecord]:
        """Return every record for ``email``, newest first.

        An identity with no records gets an empty list. Documents that do not
        parse as a record (legacy or foreign writes) are skipped and logged.
        """
        query = (
            self._ref
            .where(filter=FieldFilter("email", "==", email))
            .order_by("timestamp", direction=firestore.Query.DESCENDING)
        )
        try:
            snapshots = list(query.stream())
        except google_exceptions.GoogleAPIError as exc:
            logger.exception("Failed to read history for %s", email)
            raise StoreUnavailable() from exc
        records = []
        for snap in snapshots:
            try:
                records.append(ConversionRecord.from_document(snap.to_dict()))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed history document %s for %s (%s validation errors)",
                    snap.id, email, exc.error_count(),
                )
        return records
