"""
Document retrieval over provider-hosted knowledge stores.

Owns the store lifecycle (adopt or create each seeded store once, persist
the handle in the registry), grounded question answering against every ready
store, and document upload with polled import.
"""

from __future__ import annotations

import asyncio
import re
import shutil
import tempfile
import unicodedata
import uuid
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from tenacity import AsyncRetrying

from answering.composer.prompts import GROUNDING_INSTRUCTION
from answering.errors import DocumentImportError, StoreProvisioningError
from answering.llm.provider import ContentTurn, FileSearchTool, GenerativeProvider, history_to_turns
from answering.llm.response_parsing import (
    extract_citations,
    extract_text,
    grounding_segments,
    operation_done,
    operation_error,
)
from answering.llm.retry import as_upstream_error, document_retrieval_retrying
from answering.models import AnswerResult, FileDocument, Message, SourceBundle, StoreSeed
from answering.tools.store_registry import StoreRegistry

logger = structlog.get_logger(__name__)

_NON_PORTABLE = re.compile(r"[^\x20-\x7E]")
_PORTABLE_NAME = re.compile(r"^[\x20-\x7E]+$")


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PROVISIONING = "provisioning"
    READY = "ready"


def safe_display_name(name: str) -> str:
    """ASCII-only name the provider accepts in request headers."""
    ascii_name = _NON_PORTABLE.sub("_", unicodedata.normalize("NFKD", name))
    return ascii_name or "file"


class DocumentRetrievalAdapter:
    """Grounded answers from the seeded knowledge stores.

    Usage:
        adapter = DocumentRetrievalAdapter(provider, seeds, StoreRegistry("store-registry.json"))
        await adapter.prepare_stores(import_files=True)
        result = await adapter.answer_question("What is the leave policy?", history=history)
    """

    def __init__(
        self,
        provider: GenerativeProvider,
        seeds: Sequence[StoreSeed],
        registry: StoreRegistry,
        model: str = "gemini-2.5-pro",
        retry_policy: Optional[AsyncRetrying] = None,
        poll_interval: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._provider = provider
        self._seeds = list(seeds)
        self._registry = registry
        self.model = model
        self._retry_policy = retry_policy or document_retrieval_retrying()
        self._poll_interval = poll_interval
        self._sleep = sleep

        self._state = StoreState.UNINITIALIZED
        self._provisioning: Optional[asyncio.Task] = None
        self._store_names: List[str] = []
        # Seed display name -> provider store, fixed once provisioning succeeds
        self._stores_by_seed: Dict[str, str] = {}
        self._registry_lock = asyncio.Lock()
        self._import_lock = asyncio.Lock()
        self._files_imported = False

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def seeds(self) -> List[StoreSeed]:
        return list(self._seeds)

    @property
    def store_names(self) -> List[str]:
        return list(self._store_names)

    # ------------------------------------------------------------------
    # Store lifecycle
    # ------------------------------------------------------------------

    async def prepare_stores(self, import_files: bool = False, force_import: bool = False) -> List[str]:
        """Make sure every seeded store exists. Safe to call repeatedly and concurrently."""
        names = await self._ensure_stores_ready()
        if import_files:
            await self.import_seed_files(force=force_import)
        return names

    async def _ensure_stores_ready(self) -> List[str]:
        if self._state is StoreState.READY:
            return list(self._store_names)

        if self._provisioning is None:
            self._state = StoreState.PROVISIONING
            self._provisioning = asyncio.get_running_loop().create_task(self._provision())

        task = self._provisioning
        try:
            # Shielded so an abandoned caller does not cancel provisioning for the others
            await asyncio.shield(task)
        except Exception:
            if self._provisioning is task:
                self._provisioning = None
                self._state = StoreState.UNINITIALIZED
            raise
        return list(self._store_names)

    async def _provision(self) -> None:
        if not self._seeds:
            raise StoreProvisioningError("No knowledge stores configured")

        names: List[str] = []
        stores_by_seed: Dict[str, str] = {}
        for seed in self._seeds:
            name = await self._ensure_store(seed)
            stores_by_seed[seed.display_name] = name
            if name not in names:
                names.append(name)

        self._stores_by_seed = stores_by_seed
        self._store_names = names
        self._state = StoreState.READY
        logger.info("Knowledge stores ready", stores=names)

    async def _ensure_store(self, seed: StoreSeed) -> str:
        async with self._registry_lock:
            registered = self._registry.load()
            name = seed.existing_name or registered.get(seed.display_name)
            if name is None:
                name = await self._find_existing_store(seed.display_name)
            if name is None:
                name = await self._create_store(seed.display_name)
            if registered.get(seed.display_name) != name:
                self._registry.record(seed.display_name, name)
            return name

    async def _find_existing_store(self, display_name: str) -> Optional[str]:
        try:
            stores = await self._provider.list_stores()
        except Exception as e:
            logger.warning("Listing knowledge stores failed", display_name=display_name, error=str(e))
            return None
        for store in stores:
            if store.display_name == display_name:
                logger.info("Adopting existing knowledge store", display_name=display_name, store_name=store.name)
                return store.name
        return None

    async def _create_store(self, display_name: str) -> str:
        try:
            name = await self._provider.create_store(display_name)
        except Exception as e:
            logger.error("Knowledge store creation failed", display_name=display_name, error=str(e))
            raise StoreProvisioningError(f"Could not create store {display_name!r}") from e
        if not name:
            raise StoreProvisioningError(f"Store creation for {display_name!r} returned no name")
        return name

    # ------------------------------------------------------------------
    # Answering
    # ------------------------------------------------------------------

    async def answer_question(
        self,
        question: str,
        conversation_id: Optional[str] = None,
        history: Sequence[Message] = (),
        system_instruction: Optional[str] = None,
    ) -> AnswerResult:
        if not question or not question.strip():
            raise ValueError("Question is required")

        store_names = await self._ensure_stores_ready()
        contents = [
            ContentTurn(role="user", text=GROUNDING_INSTRUCTION.strip()),
            *history_to_turns(history),
            ContentTurn(role="user", text=question),
        ]

        try:
            response = await self._retry_policy.copy()(
                self._provider.generate_content,
                model=self.model,
                contents=contents,
                system_instruction=system_instruction,
                tools=[FileSearchTool(store_names=tuple(store_names))],
            )
        except Exception as e:
            raise as_upstream_error(e, "Document retrieval") from e

        answer = extract_text(response)
        citations = extract_citations(response)
        logger.info(
            "Document retrieval answered",
            conversation_id=conversation_id,
            answer_length=len(answer),
            cited_files=[source.file_name for source in citations],
        )
        logger.debug("Grounding segments", conversation_id=conversation_id, segments=grounding_segments(response))

        sources = SourceBundle(document_sources=citations) if citations else None
        return AnswerResult(answer=answer, sources=sources)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload_documents(self, documents: Sequence[FileDocument]) -> None:
        """Upload documents into the primary store."""
        if not documents:
            return

        await self._ensure_stores_ready()
        store_name = self._stores_by_seed[self._seeds[0].display_name]
        for document in documents:
            await self._upload_and_import(document, store_name)

    async def import_seed_files(self, force: bool = False) -> None:
        """Import every seed file into its store once per process, or again when forced."""
        async with self._import_lock:
            if self._files_imported and not force:
                return
            await self._ensure_stores_ready()
            for seed in self._seeds:
                store_name = self._stores_by_seed[seed.display_name]
                for document in seed.files:
                    await self._upload_and_import(document, store_name)
            self._files_imported = True

    async def _upload_and_import(self, document: FileDocument, store_name: str) -> None:
        source = Path(document.path)
        display_name = safe_display_name(document.display_name or source.name)
        upload_path, temp_path = self._portable_upload_path(source)
        logger.info("Importing document", store_name=store_name, display_name=display_name, path=str(source))

        try:
            try:
                file_name = await self._provider.upload_file(
                    str(upload_path), display_name, document.mime_type or "text/plain"
                )
                if not file_name:
                    raise DocumentImportError("Upload response did not include a file name")
                operation = await self._provider.import_file(store_name, file_name)
            except DocumentImportError:
                raise
            except Exception as e:
                raise DocumentImportError(f"Could not upload {display_name!r}") from e
            await self._poll_operation(operation)
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

        logger.info("Document imported", store_name=store_name, display_name=display_name)

    @staticmethod
    def _portable_upload_path(source: Path) -> Tuple[Path, Optional[Path]]:
        """Copy files with non-ASCII names to an ASCII-named temp file."""
        if _PORTABLE_NAME.match(source.name):
            return source, None
        temp_path = Path(tempfile.gettempdir()) / f"upload-{uuid.uuid4().hex[:8]}-{safe_display_name(source.name)}"
        shutil.copyfile(source, temp_path)
        return temp_path, temp_path

    async def _poll_operation(self, operation):
        while not operation_done(operation):
            await self._sleep(self._poll_interval)
            operation = await self._provider.get_operation(operation)

        error = operation_error(operation)
        if error:
            raise DocumentImportError(f"File import operation failed: {error}")
        return operation
