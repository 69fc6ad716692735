"""
File processing pipeline: extract -> compress -> embed -> store.

The processor owns the lifecycle of one files row. The row is created once
the content hash is known and is then advanced stage by stage; failures in
compression or embedding are recorded on the row before being raised.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from config import settings
from core.compression.artisan_cut import FileCompressionError, compress_file
from core.events.change_feed import INSERT, UPDATE, FileChangeFeed, get_change_feed
from core.parsers.text_extractor import (
    FileExtractionError,
    extract_text,
    validate_file_size,
)
from core.validators import is_valid_file_id, is_valid_uuid
from core.vector.voyage_client import VectorizationError, generate_embedding
from dao.base_dao import as_uuid
from dao.file_dao import FileDAO
from dao.models.file import FileRecord, FileStatus, FileType, ProcessingStage
from database import get_async_session_local

logger = logging.getLogger(__name__)

PROGRESS_MAP = {
    "extraction_start": 0,
    "extraction_end": 25,
    "compression_start": 25,
    "compression_end": 75,
    "embedding_start": 75,
    "embedding_end": 90,
    "finalization_start": 90,
    "finalization_end": 100,
}


class FileProcessorError(Exception):
    """
    Pipeline failure surfaced to callers.

    Codes: VALIDATION_ERROR, EXTRACTION_ERROR, COMPRESSION_ERROR,
    EMBEDDING_ERROR, DUPLICATE_FILE, DATABASE_ERROR, UNKNOWN_ERROR.
    """

    def __init__(
        self,
        message: str,
        code: str,
        stage: ProcessingStage,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.stage = stage
        self.details = details

    def __str__(self) -> str:
        return f"[{self.code}] {self.message} (stage={self.stage.value})"


@dataclass
class ProcessFileInput:
    file_buffer: bytes
    filename: str
    content_type: str
    user_id: Optional[str] = None
    file_id: Optional[str] = None


@dataclass
class ProgressUpdate:
    file_id: Optional[str]
    stage: ProcessingStage
    progress: int
    message: str


@dataclass
class ProcessFileOutput:
    id: str
    filename: str
    file_type: FileType
    status: FileStatus
    description: str
    embedding: List[float]
    content_hash: str
    warnings: List[str] = field(default_factory=list)


ProgressCallback = Callable[[ProgressUpdate], Union[None, Awaitable[None]]]


class FileProcessor:
    """Runs one file through the pipeline and keeps its row up to date."""

    def __init__(
        self,
        session_factory=None,
        change_feed: Optional[FileChangeFeed] = None,
        compressor=None,
        embedder=None,
    ):
        """
        Args:
            session_factory: async_sessionmaker; defaults to the app's factory
            change_feed: Feed receiving row changes; defaults to the global feed
            compressor: Coroutine function with compress_file's signature
            embedder: Coroutine function with generate_embedding's signature
        """
        self.file_dao = FileDAO()
        self._session_factory = session_factory or get_async_session_local()
        self.change_feed = change_feed or get_change_feed()
        self.compressor = compressor or compress_file
        self.embedder = embedder or generate_embedding
        self.max_attempts = settings.DB_RETRY_ATTEMPTS
        self.base_delay = settings.DB_RETRY_BASE_DELAY_SECONDS
        self._sleep = asyncio.sleep

    @staticmethod
    def _validate_input(data: ProcessFileInput) -> None:
        problems = []
        if not isinstance(data.file_buffer, (bytes, bytearray)):
            problems.append(("file_buffer", "File buffer must be bytes"))
        if not isinstance(data.filename, str) or not data.filename.strip():
            problems.append(("filename", "Filename is required"))
        if not data.content_type:
            problems.append(("content_type", "Content type is required"))
        if data.user_id is not None and not is_valid_uuid(str(data.user_id)):
            problems.append(("user_id", "User ID must be a valid UUID"))
        if data.file_id is not None and not is_valid_file_id(str(data.file_id)):
            problems.append(("file_id", "File ID must be a valid UUID v4"))

        if problems:
            field_name, message = problems[0]
            raise FileProcessorError(
                message,
                "VALIDATION_ERROR",
                ProcessingStage.EXTRACTION,
                {"field": field_name, "errors": [msg for _, msg in problems]},
            )

    async def _report(
        self,
        on_progress: Optional[ProgressCallback],
        file_id: Optional[str],
        stage: ProcessingStage,
        progress: int,
        message: str,
    ) -> None:
        logger.info(f"[{file_id or 'new'}] {stage.value} {progress}%: {message}")
        if on_progress is None:
            return
        try:
            result = on_progress(ProgressUpdate(file_id, stage, progress, message))
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    async def _find_duplicate(
        self, user_id, content_hash: str, exclude_id: Optional[str] = None
    ) -> Optional[FileRecord]:
        try:
            async with self._session_factory() as session:
                return await self.file_dao.find_duplicate(
                    session, user_id, content_hash, exclude_id=exclude_id
                )
        except Exception as e:
            logger.error(f"Duplicate check failed: {e}", exc_info=True)
            raise FileProcessorError(
                f"Failed to check for duplicate files: {e}",
                "DATABASE_ERROR",
                ProcessingStage.EXTRACTION,
            ) from e

    async def _find_existing(self, data: ProcessFileInput) -> Optional[FileRecord]:
        """The caller's row for a pre-assigned file id, if it already exists."""
        if not data.file_id:
            return None
        try:
            async with self._session_factory() as session:
                return await self.file_dao.get_for_user(session, data.file_id, data.user_id)
        except Exception as e:
            logger.error(f"Lookup of file {data.file_id} failed: {e}", exc_info=True)
            raise FileProcessorError(
                f"Failed to look up file record: {e}",
                "DATABASE_ERROR",
                ProcessingStage.EXTRACTION,
            ) from e

    def _row_values(self, data: ProcessFileInput, extraction) -> Dict[str, Any]:
        return dict(
            filename=data.filename,
            file_type=extraction.file_type,
            content_hash=extraction.content_hash,
            status=FileStatus.PENDING,
            processing_stage=ProcessingStage.EXTRACTION,
            progress=0,
        )

    async def _create_row(self, data: ProcessFileInput, extraction) -> FileRecord:
        values = self._row_values(data, extraction)
        values["user_id"] = as_uuid(data.user_id)
        if data.file_id:
            values["id"] = as_uuid(data.file_id)
        try:
            async with self._session_factory() as session:
                record = await self.file_dao.create(session, **values)
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to create file record: {e}", exc_info=True)
            raise FileProcessorError(
                f"Failed to create file record: {e}",
                "DATABASE_ERROR",
                ProcessingStage.EXTRACTION,
            ) from e
        self.change_feed.publish_record(INSERT, record)
        return record

    async def _reset_row(self, file_id: str, data: ProcessFileInput, extraction) -> FileRecord:
        """Put an existing row back to pending for reprocessing."""
        try:
            record = await self._update_row(
                file_id,
                error_message=None,
                description=None,
                embedding=None,
                **self._row_values(data, extraction),
            )
        except Exception as e:
            logger.error(f"Failed to reset file record {file_id}: {e}", exc_info=True)
            raise FileProcessorError(
                f"Failed to reset file record: {e}",
                "DATABASE_ERROR",
                ProcessingStage.EXTRACTION,
            ) from e
        if record is None:
            raise FileProcessorError(
                "File record disappeared before reprocessing",
                "DATABASE_ERROR",
                ProcessingStage.EXTRACTION,
                {"file_id": file_id},
            )
        logger.info(f"Reprocessing existing file {file_id}")
        return record

    async def _update_row(self, file_id: str, **values) -> Optional[FileRecord]:
        async with self._session_factory() as session:
            record = await self.file_dao.update(session, file_id, **values)
            await session.commit()
        if record is None:
            logger.warning(f"File {file_id} no longer exists; update skipped")
            return None
        self.change_feed.publish_record(UPDATE, record)
        return record

    async def _update_with_retry(self, file_id: str, **values) -> Optional[FileRecord]:
        """
        Apply an update, retrying with exponential backoff.

        After the final failed attempt the error is logged and None is
        returned; the pipeline carries on.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self._update_row(file_id, **values)
            except Exception as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        f"Giving up on update of file {file_id} after {attempt} attempts: {e}",
                        exc_info=True,
                    )
                    return None
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Update of file {file_id} failed (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay}s: {e}"
                )
                await self._sleep(delay)
        return None

    async def _mark_failed(
        self, file_id: str, code: str, message: str, stage: ProcessingStage
    ) -> None:
        await self._update_with_retry(
            file_id,
            status=FileStatus.FAILED,
            processing_stage=stage,
            error_message=f"[{code}] {message}",
        )

    async def process_file(
        self,
        data: ProcessFileInput,
        on_progress: Optional[ProgressCallback] = None,
        skip_duplicate_check: bool = False,
    ) -> ProcessFileOutput:
        """
        Process one uploaded file end to end.

        A `file_id` naming one of the user's existing rows (typically a failed
        one) reprocesses that row in place: it is reset to pending, its error
        is cleared and it is not counted as its own duplicate.

        Args:
            data: File bytes and metadata
            on_progress: Optional sync or async callback receiving ProgressUpdate
            skip_duplicate_check: Process even if the user already has this content

        Returns:
            ProcessFileOutput for the ready row

        Raises:
            FileProcessorError: Validation, extraction, duplicate and database
                errors are raised before any row exists. Compression and
                embedding errors are raised after the row is marked failed.
        """
        self._validate_input(data)
        await self._report(
            on_progress, data.file_id, ProcessingStage.EXTRACTION,
            PROGRESS_MAP["extraction_start"], "Validating file...",
        )

        try:
            validate_file_size(bytes(data.file_buffer), settings.MAX_FILE_SIZE_MB)
        except FileExtractionError as e:
            raise FileProcessorError(
                e.message,
                "VALIDATION_ERROR",
                ProcessingStage.EXTRACTION,
                {"reason": e.code, **(e.details or {})},
            ) from e

        try:
            extraction = await extract_text(bytes(data.file_buffer), data.filename)
        except FileExtractionError as e:
            raise FileProcessorError(
                f"Text extraction failed: {e.message}",
                "EXTRACTION_ERROR",
                ProcessingStage.EXTRACTION,
                {"reason": e.code, **(e.details or {})},
            ) from e

        for warning in extraction.warnings:
            logger.warning(f"{data.filename}: {warning}")

        await self._report(
            on_progress, data.file_id, ProcessingStage.EXTRACTION,
            PROGRESS_MAP["extraction_end"], f"Extracted text ({extraction.word_count} words)",
        )

        existing_row = await self._find_existing(data)
        if not skip_duplicate_check:
            existing = await self._find_duplicate(
                data.user_id, extraction.content_hash, exclude_id=data.file_id
            )
            if existing is not None:
                raise FileProcessorError(
                    f"File already exists (duplicate content hash: {extraction.content_hash[:8]}...)",
                    "DUPLICATE_FILE",
                    ProcessingStage.EXTRACTION,
                    {"existing_file_id": str(existing.id), "content_hash": extraction.content_hash},
                )

        if existing_row is not None:
            record = await self._reset_row(str(existing_row.id), data, extraction)
        else:
            record = await self._create_row(data, extraction)
        file_id = str(record.id)
        await self._report(
            on_progress, file_id, ProcessingStage.EXTRACTION,
            PROGRESS_MAP["extraction_end"], "File record created",
        )

        stage = ProcessingStage.COMPRESSION
        try:
            await self._update_with_retry(
                file_id,
                status=FileStatus.PROCESSING,
                processing_stage=ProcessingStage.COMPRESSION,
                progress=PROGRESS_MAP["compression_start"],
                error_message=None,
            )
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["compression_start"], "Starting compression...",
            )
            try:
                compression = await self.compressor(
                    extraction.text, data.filename, extraction.file_type
                )
            except FileCompressionError as e:
                await self._mark_failed(
                    file_id, "COMPRESSION_ERROR", f"Compression failed: {e.message}", stage
                )
                raise FileProcessorError(
                    f"Compression failed: {e.message}",
                    "COMPRESSION_ERROR",
                    stage,
                    {"reason": e.code, "file_id": file_id, **(e.details or {})},
                ) from e
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["compression_end"], "Compression complete",
            )
            await self._update_with_retry(
                file_id, progress=PROGRESS_MAP["compression_end"]
            )

            stage = ProcessingStage.EMBEDDING
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["embedding_start"], "Generating embedding...",
            )
            try:
                embedding = await self.embedder(compression.description)
            except VectorizationError as e:
                await self._mark_failed(
                    file_id, "EMBEDDING_ERROR", f"Embedding generation failed: {e.message}", stage
                )
                raise FileProcessorError(
                    f"Embedding generation failed: {e.message}",
                    "EMBEDDING_ERROR",
                    stage,
                    {"reason": e.code, "file_id": file_id, **(e.details or {})},
                ) from e
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["embedding_end"], "Embedding complete",
            )

            stage = ProcessingStage.FINALIZATION
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["finalization_start"], "Finalizing...",
            )
            await self._update_with_retry(
                file_id,
                description=compression.description,
                embedding=embedding,
                status=FileStatus.READY,
                processing_stage=ProcessingStage.FINALIZATION,
                progress=PROGRESS_MAP["finalization_end"],
                error_message=None,
            )
            await self._report(
                on_progress, file_id, stage,
                PROGRESS_MAP["finalization_end"], "Processing complete",
            )
        except FileProcessorError:
            raise
        except Exception as e:
            logger.error(f"Unexpected error processing {file_id} during {stage.value}: {e}", exc_info=True)
            await self._mark_failed(file_id, "UNKNOWN_ERROR", str(e), stage)
            raise FileProcessorError(
                f"Unexpected error during {stage.value}: {e}",
                "UNKNOWN_ERROR",
                stage,
                {"file_id": file_id},
            ) from e

        logger.info(f"File {file_id} ({data.filename}) processed successfully")
        return ProcessFileOutput(
            id=file_id,
            filename=data.filename,
            file_type=extraction.file_type,
            status=FileStatus.READY,
            description=compression.description,
            embedding=list(embedding),
            content_hash=extraction.content_hash,
            warnings=list(extraction.warnings),
        )
