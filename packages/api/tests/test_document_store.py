# This project was developed with assistance from AI tools.
"""Tests for conditions document package storage."""

import json
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from src.core.errors import StorageFailureError
from src.schemas.loan import ConditionsProofDoc
from src.services.document_store import (
    NO_DOCUMENTS_MESSAGE,
    READ_FAILED_MESSAGE,
    SAVE_FAILED_MESSAGE,
    InMemoryDocumentStore,
    S3DocumentStore,
    collect_package_documents,
    infer_extension,
    is_safe_relative_path,
    parse_data_url,
    sanitize_path_segment,
)

from .factories import LOAN_ID, NOW, make_conditions_form


class FailingStore(InMemoryDocumentStore):
    """Fails on the Nth write."""

    def __init__(self, fail_on: int):
        super().__init__()
        self._fail_on = fail_on
        self._writes = 0

    async def put_object(self, key, data, content_type):
        self._writes += 1
        if self._writes == self._fail_on:
            raise OSError("disk full")
        await super().put_object(key, data, content_type)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_parse_base64_data_url():
    assert parse_data_url("data:application/pdf;base64,SGVsbG8=") == ("application/pdf", b"Hello")


def test_parse_percent_encoded_data_url():
    assert parse_data_url("data:text/plain,a%20b") == ("text/plain", b"a b")


@pytest.mark.parametrize("value", [None, "", "https://example.com/x.pdf", "data:;base64,@@@"])
def test_parse_rejects_malformed(value):
    assert parse_data_url(value) is None


def test_sanitize_path_segment():
    assert sanitize_path_segment("Bank Statement (March).pdf") == "Bank-Statement-March-.pdf"
    assert sanitize_path_segment("../../etc") == "..-..-etc"
    assert sanitize_path_segment("   ", "fallback") == "fallback"


def test_safe_relative_path():
    assert is_safe_relative_path("conditions-submissions/LA-1/pkg/file.pdf")
    assert not is_safe_relative_path("/etc/passwd")
    assert not is_safe_relative_path("a/../b")
    assert not is_safe_relative_path("")


def test_infer_extension():
    assert infer_extension("scan.PDF") == ".pdf"
    assert infer_extension("scan", "image/png") == ".png"
    assert infer_extension("scan", "application/x-unknown") == ".bin"


def test_collect_orders_sections_and_labels():
    pending = collect_package_documents(make_conditions_form())
    sections = [item.section for item in pending]
    assert sections[0] == "proof_of_liquidity"
    assert sections[-1] == "past_projects"
    assert pending[0].label == "Proof of Liquidity - Bank statements / Checking accounts"
    assert pending[1].label == "LLC Document - Certificate of Good Standing"
    assert pending[-1].sub_dir == "past-projects/project-1"
    assert pending[-1].label == "Past Project Photo - 9 Elm St"


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_persist_writes_files_and_manifest():
    store = InMemoryDocumentStore()
    package = await store.persist_conditions_package(LOAN_ID, make_conditions_form(), now=NOW)

    # 1 liquidity + 4 LLC + 1 project photo
    assert package.document_count == 6
    assert package.root_relative_path.startswith(f"conditions-submissions/{LOAN_ID}/")
    assert package.files[0].saved_as == "001-bank.pdf"
    assert package.files[0].size_bytes == len(b"bank")
    assert set(store.objects) == {f.relative_path for f in package.files} | {
        package.manifest_relative_path
    }
    manifest = json.loads(store.objects[package.manifest_relative_path][0])
    assert manifest["document_count"] == 6


@pytest.mark.asyncio
async def test_read_package_file_round_trip():
    store = InMemoryDocumentStore()
    package = await store.persist_conditions_package(LOAN_ID, make_conditions_form(), now=NOW)
    entry, payload = await store.read_package_file(package, "conditions-doc-1")
    assert entry.name == "bank.pdf"
    assert payload == b"bank"


@pytest.mark.asyncio
async def test_read_unknown_file_raises_key_error():
    store = InMemoryDocumentStore()
    package = await store.persist_conditions_package(LOAN_ID, make_conditions_form(), now=NOW)
    with pytest.raises(KeyError):
        await store.read_package_file(package, "conditions-doc-99")


@pytest.mark.asyncio
async def test_nothing_decodable_fails_without_writes():
    store = InMemoryDocumentStore()
    form = make_conditions_form(
        proof_of_liquidity_docs=[
            ConditionsProofDoc(name="x.pdf", data_url="not-a-data-url", category="BANK_STATEMENTS")
        ],
        llc_docs=[],
        past_projects=[],
    )
    with pytest.raises(StorageFailureError) as exc:
        await store.persist_conditions_package(LOAN_ID, form, now=NOW)
    assert exc.value.detail == NO_DOCUMENTS_MESSAGE
    assert store.objects == {}


@pytest.mark.asyncio
async def test_failed_write_removes_partial_package():
    store = FailingStore(fail_on=3)
    with pytest.raises(StorageFailureError) as exc:
        await store.persist_conditions_package(LOAN_ID, make_conditions_form(), now=NOW)
    assert exc.value.detail == SAVE_FAILED_MESSAGE
    assert exc.value.status_code == 503
    assert store.objects == {}


@pytest.mark.asyncio
async def test_failed_manifest_write_removes_files():
    store = FailingStore(fail_on=7)
    with pytest.raises(StorageFailureError):
        await store.persist_conditions_package(LOAN_ID, make_conditions_form(), now=NOW)
    assert store.objects == {}


def _s3_store() -> tuple[S3DocumentStore, MagicMock]:
    client = MagicMock()
    with patch("src.services.document_store.boto3.client", return_value=client):
        store = S3DocumentStore("http://minio:9000", "key", "secret", "loans")
    return store, client


@pytest.mark.asyncio
async def test_s3_read_failure_reports_read_message():
    store, client = _s3_store()
    client.get_object.side_effect = ClientError({"Error": {"Code": "NoSuchKey"}}, "GetObject")
    with pytest.raises(StorageFailureError) as exc:
        await store.get_object("conditions-submissions/LA/1/manifest.json")
    assert exc.value.detail == READ_FAILED_MESSAGE
    client.get_object.assert_called_once_with(
        Bucket="loans", Key="conditions-submissions/LA/1/manifest.json"
    )


@pytest.mark.asyncio
async def test_s3_write_failure_reports_save_message():
    store, client = _s3_store()
    client.put_object.side_effect = ClientError({"Error": {"Code": "SlowDown"}}, "PutObject")
    with pytest.raises(StorageFailureError) as exc:
        await store.put_object("conditions-submissions/LA/1/a.pdf", b"%PDF", "application/pdf")
    assert exc.value.detail == SAVE_FAILED_MESSAGE


@pytest.mark.asyncio
async def test_s3_read_returns_body_bytes():
    store, client = _s3_store()
    client.get_object.return_value = {"Body": MagicMock(read=MagicMock(return_value=b"%PDF"))}
    assert await store.get_object("conditions-submissions/LA/1/a.pdf") == b"%PDF"
