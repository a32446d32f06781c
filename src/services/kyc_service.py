# coding: utf-8
"""
KYC Service

Document submissions and reviews per verification level, and the tier
transitions they unlock. The user's kyc_level only ever increases: it
advances when every document required for the next level is approved and
is never lowered by a rejection.
"""

from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from loguru import logger

from config.limits import MAX_KYC_TIER, get_operation_limit, get_required_documents
from src.core.enums import (
    KycDocumentStatus,
    KycDocumentType,
    KycLevelStatus,
    LedgerEvent,
    LimitedOperation,
)
from src.core.exceptions import KycSubmissionError, NotFound
from src.database import crud
from src.database.models import KycDocument, User, utcnow
from src.services.notifications import NotificationService


def _latest_by_type(documents: List[KycDocument], level: int) -> Dict[str, KycDocument]:
    """Most recent submission of each document type for a level"""
    latest: Dict[str, KycDocument] = {}
    for document in documents:
        if document.level == level:
            latest[document.document_type] = document
    return latest


def level_status(documents: List[KycDocument], level: int) -> KycLevelStatus:
    """Aggregate the document states of one level"""
    latest = _latest_by_type(documents, level)
    if not latest:
        return KycLevelStatus.NOT_STARTED

    required = {doc_type.value for doc_type in get_required_documents(level)}
    statuses = {doc.status for doc in latest.values()}

    if required and all(
        doc_type in latest and latest[doc_type].status == KycDocumentStatus.APPROVED.value
        for doc_type in required
    ):
        return KycLevelStatus.APPROVED
    if KycDocumentStatus.REJECTED.value in statuses:
        return KycLevelStatus.REJECTED
    return KycLevelStatus.PENDING


class KycService:
    """KYC submissions, reviews and tier upgrades"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        notifications: Optional[NotificationService] = None,
    ):
        self._session_maker = session_maker
        self._notifications = notifications or NotificationService()

    async def submit_document(
        self,
        user_id: int,
        level: int,
        document_type: str,
        document_path: str,
    ) -> KycDocument:
        """
        Record an uploaded KYC document for review

        Args:
            user_id: User ID
            level: Level the document is for (1-3)
            document_type: KycDocumentType value
            document_path: Location returned by the storage collaborator

        Returns:
            Pending KycDocument

        Raises:
            NotFound: unknown user
            KycSubmissionError: wrong level/type, level already verified,
                previous level incomplete or document already under review
        """
        if level < 1 or level > MAX_KYC_TIER:
            raise KycSubmissionError(f"Invalid KYC level {level}", level=level)

        try:
            doc_type = KycDocumentType(document_type)
        except ValueError:
            raise KycSubmissionError(
                f"Unknown document type {document_type}", document_type=document_type
            )

        if doc_type not in get_required_documents(level):
            raise KycSubmissionError(
                f"Document {doc_type.value} is not required for level {level}",
                level=level,
                document_type=doc_type.value,
            )

        if not document_path:
            raise KycSubmissionError("Document path is required")

        async with self._session_maker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found", user_id=user_id)

            if user.kyc_level >= level:
                raise KycSubmissionError(
                    f"KYC level {level} already verified", level=level, kyc_level=user.kyc_level
                )
            if level > user.kyc_level + 1:
                raise KycSubmissionError(
                    f"Complete KYC level {user.kyc_level + 1} first",
                    level=level,
                    kyc_level=user.kyc_level,
                )

            documents = await crud.get_kyc_documents(session, user_id)
            current = _latest_by_type(documents, level).get(doc_type.value)
            if current is not None and current.status != KycDocumentStatus.REJECTED.value:
                raise KycSubmissionError(
                    f"Document {doc_type.value} is already {current.status}",
                    document_id=current.id,
                )

            document = KycDocument(
                user_id=user_id,
                level=level,
                document_type=doc_type.value,
                document_path=document_path,
                status=KycDocumentStatus.PENDING.value,
            )
            session.add(document)
            await session.commit()

        logger.info(f"KYC document {document.id} ({doc_type.value}, level {level}) submitted by user {user_id}")
        return document

    async def _lock_user(self, session: AsyncSession, user_id: int) -> User:
        stmt = select(User).where(User.id == user_id).with_for_update()
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one()

    async def _lock_document(self, session: AsyncSession, document_id: int) -> KycDocument:
        stmt = select(KycDocument).where(KycDocument.id == document_id).with_for_update()
        result = await session.execute(stmt.execution_options(populate_existing=True))
        return result.scalar_one()

    async def review_document(
        self,
        document_id: int,
        approve: bool,
        reason: Optional[str] = None,
    ) -> KycDocument:
        """
        Approve or reject a pending document

        On approval the user's tier advances for every consecutive level
        whose required documents are now all approved.

        Raises:
            NotFound: unknown document
            KycSubmissionError: document already reviewed
        """
        async with self._session_maker() as session:
            document = await crud.get_kyc_document(session, document_id)
            if document is None:
                raise NotFound(f"KYC document {document_id} not found", document_id=document_id)

            # Reviews of one user's documents run one at a time, so the last
            # approval of a level always sees the others committed
            user = await self._lock_user(session, document.user_id)
            document = await self._lock_document(session, document_id)

            if document.status != KycDocumentStatus.PENDING.value:
                raise KycSubmissionError(
                    f"KYC document {document_id} already {document.status}",
                    document_id=document_id,
                )

            document.reviewed_at = utcnow()
            if approve:
                document.status = KycDocumentStatus.APPROVED.value
                document.rejection_reason = None
            else:
                document.status = KycDocumentStatus.REJECTED.value
                document.rejection_reason = reason or "Document rejected"

            previous_tier = user.kyc_level

            if approve:
                await session.flush()
                documents = await crud.get_kyc_documents(session, user.id)
                while user.kyc_level < MAX_KYC_TIER:
                    next_level = user.kyc_level + 1
                    if level_status(documents, next_level) != KycLevelStatus.APPROVED:
                        break
                    user.kyc_level = next_level

            await session.commit()
            new_tier = user.kyc_level

        logger.info(
            f"KYC document {document_id} {document.status} "
            f"(user {document.user_id}, level {document.level})"
        )

        if new_tier > previous_tier:
            logger.info(f"User {document.user_id} KYC tier {previous_tier} -> {new_tier}")
            await self._notifications.publish(
                LedgerEvent.KYC_TIER_UPGRADED,
                document.user_id,
                previous_tier=previous_tier,
                kyc_level=new_tier,
            )

        return document

    async def get_status(self, user_id: int) -> dict:
        """
        KYC overview of a user

        Returns:
            Dict with kyc_level, per-level status, current limits and the
            latest rejection reason
        """
        async with self._session_maker() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFound(f"User {user_id} not found", user_id=user_id)
            documents = await crud.get_kyc_documents(session, user_id)

        levels = {}
        for level in range(1, MAX_KYC_TIER + 1):
            if level <= user.kyc_level:
                levels[level] = KycLevelStatus.APPROVED
            else:
                levels[level] = level_status(documents, level)

        rejected = [doc for doc in documents if doc.status == KycDocumentStatus.REJECTED.value]

        return {
            "kyc_level": user.kyc_level,
            "levels": levels,
            "limits": {
                operation: get_operation_limit(user.kyc_level, operation)
                for operation in LimitedOperation
            },
            "rejection_reason": rejected[-1].rejection_reason if rejected else None,
        }
