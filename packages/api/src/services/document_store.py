# This project was developed with assistance from AI tools.
"""Conditions document package storage.

A conditions submission carries its files inline as data URLs. The store
decodes them, writes each one under a per-submission prefix, and finishes
with a ``manifest.json`` describing the package. Persistence is
all-or-nothing: if any write fails, the objects already written are removed
and ``StorageFailureError`` is raised, so the caller never saves a loan that
points at a partial package.

The S3 implementation uses the boto3 synchronous client in the default
executor. The module exposes a singleton initialised at app startup via
``init_document_store()``.
"""

import asyncio
import base64
import binascii
import json
import logging
import posixpath
import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from urllib.parse import unquote_to_bytes

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings
from ..core.errors import StorageFailureError
from ..schemas.loan import ConditionsForm, DocumentPackage, PackageFile, UploadedFile
from .conditions import (
    liquidity_category_label,
    liquidity_subcategory_label,
    llc_doc_label,
)

logger = logging.getLogger(__name__)

NO_DOCUMENTS_MESSAGE = "No condition documents were saved."
SAVE_FAILED_MESSAGE = "Failed to save conditions documents. Please try again."
READ_FAILED_MESSAGE = "Failed to read conditions document. Please try again."

_DATA_URL_RE = re.compile(r"^data:([^;,]+)?(?:;charset=[^;,]+)?(;base64)?,(.*)$", re.DOTALL)
_UNSAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]")

_EXTENSIONS = {
    "application/pdf": ".pdf",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
    "text/plain": ".txt",
    "text/csv": ".csv",
    "application/msword": ".doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "application/vnd.ms-excel": ".xls",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": ".xlsx",
}


# ---------------------------------------------------------------------------
# Path and payload helpers
# ---------------------------------------------------------------------------


def parse_data_url(data_url: str | None) -> tuple[str, bytes] | None:
    """Decode a ``data:`` URL into ``(mime_type, payload)``; None when malformed."""
    if not data_url or not data_url.startswith("data:"):
        return None
    match = _DATA_URL_RE.match(data_url)
    if match is None:
        return None
    mime_type = match.group(1) or "application/octet-stream"
    payload = match.group(3) or ""
    try:
        if match.group(2):
            return mime_type, base64.b64decode(payload, validate=True)
        return mime_type, unquote_to_bytes(payload)
    except (binascii.Error, ValueError):
        return None


def sanitize_path_segment(value: str | None, fallback: str = "item") -> str:
    cleaned = _UNSAFE_SEGMENT_RE.sub("-", (value or "").strip())
    cleaned = re.sub(r"-+", "-", cleaned).strip("-")
    return cleaned or fallback


def is_safe_relative_path(path: str) -> bool:
    if not path or ".." in path:
        return False
    return not path.startswith("/")


def infer_extension(file_name: str, mime_type: str = "application/octet-stream") -> str:
    ext = posixpath.splitext(file_name or "")[1].lower()
    if ext and len(ext) <= 10:
        return ext
    return _EXTENSIONS.get(mime_type, ".bin")


# ---------------------------------------------------------------------------
# Package layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PendingDocument:
    """One inline file waiting to be written, with its package metadata."""

    file: UploadedFile
    section: str
    sub_dir: str
    label: str
    category: str | None = None
    subcategory: str | None = None
    doc_type: str | None = None
    project_index: int | None = None


def collect_package_documents(form: ConditionsForm) -> list[PendingDocument]:
    """Files to store, in manifest order: liquidity, LLC, then past-project photos."""
    pending = []
    for doc in form.proof_of_liquidity_docs:
        category_label = liquidity_category_label(doc.category)
        sub_label = liquidity_subcategory_label(doc.category, doc.subcategory)
        label = f"Proof of Liquidity - {category_label}"
        if sub_label:
            label = f"{label} / {sub_label}"
        pending.append(
            PendingDocument(
                file=doc,
                section="proof_of_liquidity",
                sub_dir="proof-of-liquidity",
                label=label,
                category=doc.category,
                subcategory=doc.subcategory,
            )
        )
    for doc in form.llc_docs:
        doc_type = doc.doc_type.value if doc.doc_type else ""
        pending.append(
            PendingDocument(
                file=doc,
                section="llc_documents",
                sub_dir="llc-documents",
                label=f"LLC Document - {llc_doc_label(doc_type)}",
                doc_type=doc_type,
            )
        )
    for index, project in enumerate(form.past_projects, start=1):
        address = project.property_address or f"Project {index}"
        for photo in project.photos:
            pending.append(
                PendingDocument(
                    file=photo,
                    section="past_projects",
                    sub_dir=f"past-projects/project-{index}",
                    label=f"Past Project Photo - {address}",
                    project_index=index,
                )
            )
    return pending


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class DocumentStore:
    """Writes conditions packages; subclasses supply the object operations."""

    def __init__(self, prefix: str = "conditions-submissions"):
        self._prefix = prefix.strip("/") or "conditions-submissions"

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    async def get_object(self, key: str) -> bytes:
        raise NotImplementedError

    async def delete_objects(self, keys: list[str]) -> None:
        raise NotImplementedError

    async def persist_conditions_package(
        self, loan_id: str, form: ConditionsForm, *, now: datetime
    ) -> DocumentPackage:
        """Store every inline file of ``form`` plus a manifest.

        Raises:
            StorageFailureError: Nothing decodable to store, or a write failed.
                Objects written before the failure are removed.
        """
        created_ms = int(now.timestamp() * 1000)
        package_id = f"{created_ms}-{secrets.token_hex(3)}"
        root = posixpath.join(
            self._prefix,
            sanitize_path_segment(loan_id, "loan"),
            sanitize_path_segment(package_id, str(created_ms)),
        )

        written: list[str] = []
        files: list[PackageFile] = []
        try:
            for pending in collect_package_documents(form):
                parsed = parse_data_url(pending.file.data_url)
                if parsed is None:
                    continue
                mime_type, payload = parsed
                counter = len(files) + 1
                original = pending.file.name.strip() or f"{pending.section}-{counter}"
                base = posixpath.splitext(posixpath.basename(original))[0]
                saved_as = (
                    f"{counter:03d}-{sanitize_path_segment(base, f'{pending.section}-{counter}')}"
                    f"{infer_extension(original, mime_type)}"
                )
                key = posixpath.join(root, pending.sub_dir, saved_as)
                await self.put_object(key, payload, mime_type)
                written.append(key)
                files.append(
                    PackageFile(
                        id=f"conditions-doc-{counter}",
                        section=pending.section,
                        label=pending.label,
                        name=original,
                        saved_as=saved_as,
                        relative_path=key,
                        content_type=mime_type or pending.file.content_type,
                        size_bytes=len(payload),
                        category=pending.category,
                        subcategory=pending.subcategory,
                        doc_type=pending.doc_type,
                        project_index=pending.project_index,
                    )
                )

            if not files:
                raise StorageFailureError(NO_DOCUMENTS_MESSAGE)

            manifest_key = posixpath.join(root, "manifest.json")
            package = DocumentPackage(
                id=package_id,
                created_at=now,
                root_relative_path=root,
                manifest_relative_path=manifest_key,
                document_count=len(files),
                files=tuple(files),
            )
            manifest = json.dumps(package.model_dump(mode="json"), indent=2).encode("utf-8")
            await self.put_object(manifest_key, manifest, "application/json")
            written.append(manifest_key)
        except StorageFailureError:
            await self._discard(written)
            raise
        except Exception as exc:
            logger.exception("Conditions package write failed for loan %s", loan_id)
            await self._discard(written)
            raise StorageFailureError(SAVE_FAILED_MESSAGE) from exc

        logger.info(
            "Stored conditions package %s for loan %s (%d files)", package_id, loan_id, len(files)
        )
        return package

    async def read_package_file(self, package: DocumentPackage, file_id: str) -> tuple[PackageFile, bytes]:
        entry = next((item for item in package.files if item.id == file_id), None)
        if entry is None or not is_safe_relative_path(entry.relative_path):
            raise KeyError(file_id)
        return entry, await self.get_object(entry.relative_path)

    async def _discard(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self.delete_objects(keys)
        except Exception:
            logger.warning("Could not remove %d partial package objects", len(keys), exc_info=True)


class InMemoryDocumentStore(DocumentStore):
    """Dict-backed store for local runs and tests."""

    def __init__(self, prefix: str = "conditions-submissions"):
        super().__init__(prefix)
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        self.objects[key] = (data, content_type)

    async def get_object(self, key: str) -> bytes:
        return self.objects[key][0]

    async def delete_objects(self, keys: list[str]) -> None:
        for key in keys:
            self.objects.pop(key, None)


class S3DocumentStore(DocumentStore):
    """Thin wrapper around a boto3 S3 client."""

    def __init__(
        self,
        endpoint: str,
        access_key: str,
        secret_key: str,
        bucket: str,
        region: str = "us-east-1",
        prefix: str = "conditions-submissions",
    ):
        super().__init__(prefix)
        self._bucket = bucket
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=BotoConfig(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
        self._ensure_bucket()

    def _ensure_bucket(self) -> None:
        """Create the bucket if it doesn't already exist (dev convenience)."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError:
            logger.info("Creating S3 bucket: %s", self._bucket)
            self._client.create_bucket(Bucket=self._bucket)

    async def _run(self, func, failure_message: str, **kwargs):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, Bucket=self._bucket, **kwargs))
        except (BotoCoreError, ClientError) as exc:
            raise StorageFailureError(failure_message) from exc

    def _download(self, **kwargs) -> bytes:
        return self._client.get_object(**kwargs)["Body"].read()

    async def put_object(self, key: str, data: bytes, content_type: str) -> None:
        await self._run(
            self._client.put_object, SAVE_FAILED_MESSAGE, Key=key, Body=data, ContentType=content_type
        )

    async def get_object(self, key: str) -> bytes:
        return await self._run(self._download, READ_FAILED_MESSAGE, Key=key)

    async def delete_objects(self, keys: list[str]) -> None:
        await self._run(
            self._client.delete_objects,
            SAVE_FAILED_MESSAGE,
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_store: DocumentStore | None = None


def init_document_store(cfg: Settings) -> DocumentStore:
    """Initialise the singleton (called once from app lifespan)."""
    global _store  # noqa: PLW0603
    if cfg.REPOSITORY_BACKEND == "memory":
        _store = InMemoryDocumentStore(cfg.CONDITIONS_PACKAGE_PREFIX)
    else:
        _store = S3DocumentStore(
            endpoint=cfg.S3_ENDPOINT,
            access_key=cfg.S3_ACCESS_KEY,
            secret_key=cfg.S3_SECRET_KEY,
            bucket=cfg.S3_BUCKET,
            region=cfg.S3_REGION,
            prefix=cfg.CONDITIONS_PACKAGE_PREFIX,
        )
    logger.info("DocumentStore initialised (%s)", type(_store).__name__)
    return _store


def get_document_store() -> DocumentStore:
    """Return the initialised DocumentStore singleton."""
    if _store is None:
        raise RuntimeError("DocumentStore not initialised -- call init_document_store() first")
    return _store
