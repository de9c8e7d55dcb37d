"""
Main Orchestrator for SnapLedger

This module ties together all the components and defines the end-to-end
voice entry flow:
    audio -> extract -> completed transaction, or draft for review

DESIGN DECISION: The orchestrator enforces the boundaries:
- A voice entry is only saved as completed when the extraction is
  confident AND complete; everything else becomes a draft the user
  confirms later
- The extraction service never creates categories on its own; a
  suggested category is only added when the user accepts it
- Every step is audited through the ledger

This is the "glue" that keeps the system consistent even when the
extraction service behaves unexpectedly.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from snapledger.audit import AuditLogger, TabularAuditStorage
from snapledger.config import get_settings
from snapledger.ledger import LedgerStore, ModeSelector, MutationError, UnknownRecordError
from snapledger.models.extraction import (
    AUTO_COMPLETE_CONFIDENCE,
    ExtractionResult,
    NewCategorySuggestion,
    NotATransaction,
    TransactionCandidate,
)
from snapledger.models.ledger import Category, CategoryInput, Transaction, UserIdentity
from snapledger.services.extraction import GeminiExtractionService
from snapledger.services.storage import (
    GoogleSheetsClient,
    LocalLedgerStore,
    PreconditionError,
    RemoteLedgerStore,
    StorageError,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VoiceEntryOutcome:
    """What a voice entry produced."""
    result: ExtractionResult
    transaction: Optional[Transaction] = None
    message: str = ""

    @property
    def needs_review(self) -> bool:
        return self.transaction is not None and self.transaction.is_draft


class VoiceEntryFlow:
    """
    Orchestrates the voice entry flow.

    Flow:
    1. Extract -> structured candidate from the recorded audio
    2. Decide -> completed when confident and complete, draft otherwise
    3. Save -> add the transaction through the ledger (optimistic)
    """

    def __init__(
        self,
        ledger: LedgerStore,
        extraction_service: Optional[GeminiExtractionService] = None,
        auto_complete_confidence: float = AUTO_COMPLETE_CONFIDENCE,
    ):
        self._ledger = ledger
        self._extraction_service = extraction_service or GeminiExtractionService()
        self._threshold = auto_complete_confidence

    async def record(self, audio: bytes, mime_type: str = "audio/webm") -> VoiceEntryOutcome:
        """
        Turn one recording into a transaction.

        Raises:
            ExtractionError: The extraction service failed
            MutationError: The transaction could not be saved
        """
        result = await self._extraction_service.extract(
            audio,
            self._ledger.categories,
            mime_type=mime_type,
        )

        if isinstance(result, NotATransaction):
            return VoiceEntryOutcome(result=result, message=result.message)

        if isinstance(result, TransactionCandidate):
            entry = result.to_input(self._threshold)
        else:
            entry = result.to_input()

        transaction = await self._ledger.add_transaction(entry)
        message = (
            "Saved."
            if not transaction.is_draft
            else "Saved as a draft. Please review it."
        )
        logger.info(
            "voice_entry_saved",
            transaction_id=transaction.id,
            status=transaction.status.value,
            result_type=result.result_type,
        )
        return VoiceEntryOutcome(result=result, transaction=transaction, message=message)

    async def accept_suggested_category(
        self,
        transaction_id: str,
        suggestion: NewCategorySuggestion,
    ) -> tuple[Category, Transaction]:
        """
        Create the category the extraction proposed and file the draft under it.

        The transaction stays a draft until the user confirms it. If the
        draft cannot be updated, the new category is removed again.
        """
        category = await self._ledger.add_category(CategoryInput(
            name=suggestion.name,
            icon=suggestion.icon,
            kind=suggestion.kind,
        ))
        try:
            transaction = await self._ledger.update_transaction(
                transaction_id,
                {"category_id": category.id},
            )
        except (MutationError, UnknownRecordError, ValueError):
            logger.warning(
                "suggested_category_discarded",
                category_id=category.id,
                transaction_id=transaction_id,
            )
            await self._ledger.delete_category(category.id)
            raise
        return category, transaction


def create_ledger_components(
    use_remote: bool = True,
    use_voice: bool = True,
) -> tuple[LedgerStore, Optional[VoiceEntryFlow], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_remote: Whether to initialize the Google Sheets remote store.
                    Without it the ledger is local-only and signing in
                    fails with PreconditionError.
        use_voice: Whether to initialize the Gemini voice entry flow.

    Returns:
        (ledger, voice_entry_flow, sheets_client)
    """
    settings = get_settings()
    sheets_client = None
    remote_factory = None
    audit_logger = AuditLogger()  # Local-only logging

    if use_remote:
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            client = sheets_client

            def remote_factory(identity: UserIdentity) -> RemoteLedgerStore:
                return RemoteLedgerStore(
                    identity.user_id,
                    client.transactions_table(),
                    client.categories_table(),
                )

            audit_logger = AuditLogger(TabularAuditStorage(sheets_client.events_table()))
        except (PreconditionError, StorageError) as e:
            # Remote store not configured - continue local-only
            logger.warning("remote_store_unavailable", error=str(e))
            sheets_client = None
            remote_factory = None

    ledger = LedgerStore(
        ModeSelector(LocalLedgerStore(settings=settings.local_store), remote_factory),
        audit=audit_logger,
        backup_version=settings.app.backup_version,
    )

    voice_flow = None
    if use_voice:
        try:
            voice_flow = VoiceEntryFlow(
                ledger,
                GeminiExtractionService(settings.gemini),
                auto_complete_confidence=settings.app.auto_complete_confidence,
            )
        except PreconditionError as e:
            logger.warning("voice_entry_unavailable", error=str(e))

    return ledger, voice_flow, sheets_client
