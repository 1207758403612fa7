"""
Integration tests for PersistentStore on a real directory.

Tests cover:
- First-run creation and reload
- Migration of an old database.json on startup
- Startup failures (corrupt, newer, failing migration)
- mutate() persistence and rollback on failure
- Document save/load/list/delete with year partitions
- Document files written by earlier releases
- relocate() and reset_all_data()
"""

import json
import tempfile
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from crm_store.errors import (
    ConflictError,
    InitializationFailedError,
    MalformedError,
    NotFoundError,
    NotInitializedError,
    ValidationError,
    WriteFailedError,
)
from crm_store.migrations import MigrationDefinition, MigrationEngine
from crm_store.models import (
    CURRENT_DATABASE_VERSION,
    CustomerSnapshot,
    Document,
    DocumentItem,
    StatusLogEntry,
    compute_totals,
    empty_database,
)
from crm_store.services import DocumentUpdate, Services
from crm_store.storage import PersistentStore, atomic_io, document_filename

TZ = timezone(timedelta(hours=1))


def make_document(
    number: str,
    created_at: datetime,
    document_type: str = "invoice",
    document_id: str | None = None,
) -> Document:
    items = [DocumentItem(id="i1", description="Work", quantity=2, unit_price=1500, total=3000)]
    subtotal, tax_amount, total = compute_totals([3000], 21)
    return Document(
        id=document_id or f"id-{number}",
        document_type=document_type,
        document_title="Invoice" if document_type == "invoice" else "Quote",
        document_number=number,
        customer_id="c1",
        customer=CustomerSnapshot(name="Acme"),
        items=items,
        subtotal=subtotal,
        tax_rate=21,
        tax_amount=tax_amount,
        total=total,
        payment_term_days=14,
        due_date=created_at + timedelta(days=14),
        status="draft",
        status_history=[StatusLogEntry(timestamp=created_at, from_status=None, to_status="draft")],
        created_at=created_at,
        updated_at=created_at,
    )


def write_database(root: Path, data: dict) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "database.json").write_text(json.dumps(data), encoding="utf-8")


def write_document_file(root: Path, relative: str, document: dict) -> Path:
    """Write a document file the way earlier releases laid it out."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"version": "1.0.0", "document": document}), encoding="utf-8")
    return path


def older_invoice(created_at: str, **overrides) -> dict:
    document = {
        "id": "b7d1c2f0-legacy",
        "documentType": "invoice",
        "documentTitle": "Factuur",
        "documentNumber": "INV-2024-0001",
        "customerId": "c1",
        "customer": {"name": "Acme", "postalCode": "1011 AB", "city": "Amsterdam"},
        "items": [
            {"id": "i1", "description": "Work", "quantity": 2, "unitPrice": 1500, "total": 3000}
        ],
        "subtotal": 3000,
        "taxRate": 21,
        "taxAmount": 630,
        "total": 3630,
        "paymentTermDays": 14,
        "dueDate": "2024-01-14T23:30:00.000Z",
        "status": "draft",
        "statusHistory": [{"timestamp": created_at, "fromStatus": None, "toStatus": "draft"}],
        "createdAt": created_at,
        "updatedAt": created_at,
    }
    document.update(overrides)
    return document


async def open_services(root: Path) -> Services:
    store = PersistentStore(root)
    await store.initialize()
    return Services(store)


@pytest.fixture
def amsterdam_time(monkeypatch):
    """Run the test with the process local time zone set to Europe/Amsterdam."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Europe/Amsterdam")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


class TestInitialize:
    """Tests for store startup."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir) / "crm"

    @pytest.mark.asyncio
    async def test_first_run_creates_layout(self, data_dir):
        store = PersistentStore(data_dir)
        database = await store.initialize()

        assert database.version == CURRENT_DATABASE_VERSION
        assert (data_dir / "offers").is_dir()
        assert (data_dir / "invoices").is_dir()
        on_disk = json.loads((data_dir / "database.json").read_text())
        assert on_disk["version"] == CURRENT_DATABASE_VERSION
        assert on_disk["products"] == []

    @pytest.mark.asyncio
    async def test_reload_keeps_data(self, data_dir):
        store = PersistentStore(data_dir)
        await store.initialize()
        await store.mutate(lambda db: setattr(db.settings, "invoice_prefix", "FAC"))

        reloaded = PersistentStore(data_dir)
        database = await reloaded.initialize()

        assert database.settings.invoice_prefix == "FAC"

    def test_get_before_initialize(self, data_dir):
        with pytest.raises(NotInitializedError):
            PersistentStore(data_dir).get()

    @pytest.mark.asyncio
    async def test_old_database_is_migrated_and_persisted(self, data_dir):
        write_database(
            data_dir,
            {
                "version": "1.0.0",
                "customers": [],
                "business": None,
                "settings": {"invoicePrefix": "INV", "nextInvoiceNumber": 7},
            },
        )

        store = PersistentStore(data_dir)
        database = await store.initialize()

        assert database.version == "1.2.0"
        assert database.settings.invoice_number_format == "{PREFIX}-{YEAR}-{NUMBER:4}"
        assert database.settings.next_invoice_number == 7
        on_disk = json.loads((data_dir / "database.json").read_text())
        assert on_disk["version"] == "1.2.0"
        assert on_disk["products"] == []

    @pytest.mark.asyncio
    async def test_corrupt_database_fails(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "database.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(InitializationFailedError) as exc_info:
            await PersistentStore(data_dir).initialize()
        assert isinstance(exc_info.value.cause, MalformedError)

    @pytest.mark.asyncio
    async def test_corrupt_database_is_not_overwritten(self, data_dir):
        data_dir.mkdir(parents=True)
        (data_dir / "database.json").write_text("{not json", encoding="utf-8")

        with pytest.raises(InitializationFailedError):
            await PersistentStore(data_dir).initialize()

        assert (data_dir / "database.json").read_text() == "{not json"

    @pytest.mark.asyncio
    async def test_invalid_shape_fails(self, data_dir):
        data = empty_database().to_json()
        data["settings"]["nextInvoiceNumber"] = "many"
        write_database(data_dir, data)

        with pytest.raises(InitializationFailedError):
            await PersistentStore(data_dir).initialize()

    @pytest.mark.asyncio
    async def test_newer_database_fails(self, data_dir):
        data = empty_database().to_json()
        data["version"] = "2.0.0"
        write_database(data_dir, data)

        with pytest.raises(InitializationFailedError, match="newer"):
            await PersistentStore(data_dir).initialize()

    @pytest.mark.asyncio
    async def test_failing_migration_fails_startup(self, data_dir):
        def broken(data):
            raise RuntimeError("boom")

        engine = MigrationEngine(
            [MigrationDefinition("1.0.0", "1.1.0", broken)], current_version="1.1.0"
        )
        write_database(data_dir, {"version": "1.0.0", "settings": {}})

        with pytest.raises(InitializationFailedError):
            await PersistentStore(data_dir, engine=engine).initialize()

        assert json.loads((data_dir / "database.json").read_text())["version"] == "1.0.0"


class TestMutate:
    """Tests for mutate()."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.mark.asyncio
    async def test_mutate_persists(self, data_dir):
        store = PersistentStore(data_dir)
        await store.initialize()

        result = await store.mutate(lambda db: setattr(db.settings, "default_tax_rate", 9) or "ok")

        assert result == "ok"
        assert store.get().settings.default_tax_rate == 9
        on_disk = json.loads((data_dir / "database.json").read_text())
        assert on_disk["settings"]["defaultTaxRate"] == 9

    @pytest.mark.asyncio
    async def test_async_mutation(self, data_dir):
        store = PersistentStore(data_dir)
        await store.initialize()

        async def change(db):
            db.settings.offer_prefix = "Q"
            return db.settings.offer_prefix

        assert await store.mutate(change) == "Q"
        assert store.get().settings.offer_prefix == "Q"

    @pytest.mark.asyncio
    async def test_raising_mutation_changes_nothing(self, data_dir):
        store = PersistentStore(data_dir)
        await store.initialize()

        def change(db):
            db.settings.offer_prefix = "Q"
            raise NotFoundError("no such customer")

        with pytest.raises(NotFoundError):
            await store.mutate(change)

        assert store.get().settings.offer_prefix == "OFF"

    @pytest.mark.asyncio
    async def test_invalid_mutation_is_rejected(self, data_dir):
        store = PersistentStore(data_dir)
        await store.initialize()

        with pytest.raises(ValidationError):
            await store.mutate(lambda db: setattr(db.settings, "next_offer_number", 0))

        assert store.get().settings.next_offer_number == 1

    @pytest.mark.asyncio
    async def test_failed_write_keeps_resident_record(self, data_dir, monkeypatch):
        store = PersistentStore(data_dir)
        await store.initialize()

        def failing_replace(src, dst):
            raise OSError("disk gone")

        monkeypatch.setattr(atomic_io.os, "replace", failing_replace)

        with pytest.raises(WriteFailedError):
            await store.mutate(lambda db: setattr(db.settings, "offer_prefix", "Q"))

        assert store.get().settings.offer_prefix == "OFF"


class TestDocuments:
    """Tests for document files."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture
    def store(self, data_dir):
        return PersistentStore(data_dir)

    @pytest.mark.asyncio
    async def test_save_then_load_by_id(self, store, data_dir):
        await store.initialize()
        document = make_document("INV-2024-0001", datetime(2024, 5, 2, 10, 0, tzinfo=TZ))

        path = await store.save_document(document)

        assert path == data_dir / "invoices" / "2024" / "INV-2024-0001.json"
        loaded = await store.load_document(document.id)
        assert loaded == document

    @pytest.mark.asyncio
    async def test_file_envelope_on_disk(self, store, data_dir):
        await store.initialize()
        document = make_document("INV-2024-0001", datetime(2024, 5, 2, 10, 0, tzinfo=TZ))
        await store.save_document(document)

        raw = json.loads((data_dir / "invoices" / "2024" / "INV-2024-0001.json").read_text())

        assert raw["version"] == "1.0.0"
        assert raw["document"]["documentNumber"] == "INV-2024-0001"
        assert raw["document"]["statusHistory"][0]["fromStatus"] is None

    @pytest.mark.asyncio
    async def test_year_is_local_year_of_created_at(self, store, data_dir, amsterdam_time):
        await store.initialize()
        late = datetime(2023, 12, 31, 23, 30, tzinfo=timezone.utc)

        await store.save_document(make_document("INV-X", late))

        assert (data_dir / "invoices" / "2024" / "INV-X.json").exists()

    @pytest.mark.asyncio
    async def test_load_by_id_missing(self, store):
        await store.initialize()

        assert await store.load_document("nope") is None

    @pytest.mark.asyncio
    async def test_load_by_number(self, store):
        await store.initialize()
        document = make_document("INV-2025-0003", datetime(2025, 1, 3, 12, tzinfo=TZ))
        await store.save_document(document)

        assert await store.load_document_by_number("invoice", "INV-2025-0003") == document
        assert await store.load_document_by_number("invoice", "INV-2025-0003", 2025) == document
        assert await store.load_document_by_number("invoice", "INV-2025-0003", 2024) is None
        assert await store.load_document_by_number("offer", "INV-2025-0003") is None

    @pytest.mark.asyncio
    async def test_list_sorted_newest_first(self, store):
        """Documents list by createdAt descending across years and types."""
        await store.initialize()
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))
        await store.save_document(make_document("B", datetime(2025, 6, 1, 12, tzinfo=TZ)))
        await store.save_document(make_document("C", datetime(2023, 12, 31, 12, tzinfo=TZ), "offer"))

        documents = await store.list_documents()

        assert [d.created_at.date().isoformat() for d in documents] == [
            "2025-06-01",
            "2024-01-01",
            "2023-12-31",
        ]

    @pytest.mark.asyncio
    async def test_list_by_type(self, store):
        await store.initialize()
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))
        await store.save_document(make_document("C", datetime(2024, 1, 2, 12, tzinfo=TZ), "offer"))

        offers = await store.list_documents("offer")

        assert [d.document_number for d in offers] == ["C"]

    @pytest.mark.asyncio
    async def test_list_fails_on_corrupt_file(self, store, data_dir):
        """A corrupt document is reported rather than skipped."""
        await store.initialize()
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))
        (data_dir / "invoices" / "2024" / "BROKEN.json").write_text("{", encoding="utf-8")

        with pytest.raises(MalformedError):
            await store.list_documents()

    @pytest.mark.asyncio
    async def test_list_ignores_temporary_files(self, store, data_dir):
        await store.initialize()
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))
        (data_dir / "invoices" / "2024" / ".B.json.x1.tmp").write_text("{", encoding="utf-8")

        assert len(await store.list_documents()) == 1

    @pytest.mark.asyncio
    async def test_delete(self, store, data_dir):
        await store.initialize()
        document = make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ))
        await store.save_document(document)

        await store.delete_document(document)

        assert not (data_dir / "invoices" / "2024" / "A.json").exists()
        with pytest.raises(NotFoundError):
            await store.delete_document(document)

    @pytest.mark.asyncio
    async def test_number_with_slash_is_stored_safely(self, store, data_dir):
        await store.initialize()
        document = make_document("2025/0042", datetime(2025, 3, 1, 12, tzinfo=TZ))

        await store.save_document(document)

        assert (data_dir / "invoices" / "2025" / "2025_0042.json").exists()
        assert await store.load_document_by_number("invoice", "2025/0042") == document

    def test_document_filename(self):
        assert document_filename("INV-2025-0001") == "INV-2025-0001.json"
        assert document_filename("a/b\\c:d") == "a_b_c_d.json"
        with pytest.raises(ValidationError):
            document_filename("..")


class TestOlderFiles:
    """Documents written by earlier releases keep working in place."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.mark.asyncio
    async def test_update_new_year_invoice_keeps_one_file(self, data_dir, amsterdam_time):
        """createdAt in UTC on New Year's Eve belongs to the next local year."""
        services = await open_services(data_dir)
        write_document_file(
            data_dir,
            "invoices/2024/INV-2024-0001.json",
            older_invoice("2023-12-31T23:30:00.000Z"),
        )

        loaded = await services.store.load_document("b7d1c2f0-legacy")
        assert loaded.year == 2024

        await services.documents.update("b7d1c2f0-legacy", DocumentUpdate(status="sent"))

        documents = await services.documents.list()
        assert [(d.document_number, d.status) for d in documents] == [("INV-2024-0001", "sent")]
        assert sorted(p.relative_to(data_dir).as_posix() for p in data_dir.rglob("*.json")) == [
            "database.json",
            "invoices/2024/INV-2024-0001.json",
        ]

        await services.documents.delete("b7d1c2f0-legacy")

        assert await services.documents.list() == []
        assert not (data_dir / "invoices" / "2024" / "INV-2024-0001.json").exists()

    @pytest.mark.asyncio
    async def test_fractional_line_totals_load(self, data_dir):
        """Line totals of quantity * unitPrice were not rounded to whole cents."""
        services = await open_services(data_dir)
        write_document_file(
            data_dir,
            "invoices/2024/INV-2024-0001.json",
            older_invoice(
                "2024-03-05T10:00:00.000Z",
                items=[
                    {
                        "id": "i1",
                        "description": "Consulting",
                        "quantity": 1.5,
                        "unitPrice": 333,
                        "total": 499.5,
                    }
                ],
                subtotal=499.5,
                taxAmount=105,
                total=604.5,
            ),
        )

        documents = await services.documents.list()

        assert len(documents) == 1
        assert documents[0].items[0].total == 499.5
        assert (documents[0].subtotal, documents[0].tax_amount, documents[0].total) == (
            499.5,
            105,
            604.5,
        )

    @pytest.mark.asyncio
    async def test_status_change_keeps_fractional_totals(self, data_dir):
        services = await open_services(data_dir)
        path = write_document_file(
            data_dir,
            "invoices/2024/INV-2024-0001.json",
            older_invoice(
                "2024-03-05T10:00:00.000Z",
                items=[
                    {"id": "i1", "description": "Hours", "quantity": 0.25, "unitPrice": 999, "total": 249.75}
                ],
                subtotal=249.75,
                taxAmount=52,
                total=301.75,
            ),
        )

        await services.documents.update("b7d1c2f0-legacy", DocumentUpdate(status="paid"))

        raw = json.loads(path.read_text())["document"]
        assert raw["status"] == "paid"
        assert (raw["subtotal"], raw["taxAmount"], raw["total"]) == (249.75, 52, 301.75)

    @pytest.mark.asyncio
    async def test_wrong_fractional_total_rejected(self, data_dir):
        services = await open_services(data_dir)
        write_document_file(
            data_dir,
            "invoices/2024/INV-2024-0001.json",
            older_invoice(
                "2024-03-05T10:00:00.000Z",
                items=[
                    {"id": "i1", "description": "Consulting", "quantity": 1.5, "unitPrice": 333, "total": 499.5}
                ],
                subtotal=499.5,
                taxAmount=105,
                total=610,
            ),
        )

        with pytest.raises(MalformedError):
            await services.documents.list()


class TestRootManagement:
    """Tests for relocate() and reset_all_data()."""

    @pytest.fixture
    def base_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.mark.asyncio
    async def test_relocate_copies_everything(self, base_dir):
        old_root, new_root = base_dir / "old", base_dir / "new"
        store = PersistentStore(old_root)
        await store.initialize()
        await store.mutate(lambda db: setattr(db.settings, "offer_prefix", "Q"))
        document = make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ))
        await store.save_document(document)

        result = await store.relocate(new_root)

        assert result == new_root
        assert store.root == new_root
        assert (new_root / "invoices" / "2024" / "A.json").exists()
        assert (old_root / "invoices" / "2024" / "A.json").exists()
        assert await store.load_document(document.id) == document

        reopened = PersistentStore(new_root)
        assert (await reopened.initialize()).settings.offer_prefix == "Q"

    @pytest.mark.asyncio
    async def test_relocate_delete_old(self, base_dir):
        old_root, new_root = base_dir / "old", base_dir / "new"
        store = PersistentStore(old_root)
        await store.initialize()
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))

        await store.relocate(new_root, delete_old=True)

        assert not (old_root / "database.json").exists()
        assert not (old_root / "invoices").exists()
        assert (new_root / "database.json").exists()

    @pytest.mark.asyncio
    async def test_relocate_same_path_rejected(self, base_dir):
        store = PersistentStore(base_dir / "data")
        await store.initialize()

        with pytest.raises(ConflictError):
            await store.relocate(base_dir / "data")

    @pytest.mark.asyncio
    async def test_relocate_into_own_subdirectory_rejected(self, base_dir):
        store = PersistentStore(base_dir / "data")
        await store.initialize()

        with pytest.raises(ConflictError):
            await store.relocate(base_dir / "data" / "nested")

    @pytest.mark.asyncio
    async def test_relocate_to_parent_directory(self, base_dir):
        old_root, new_root = base_dir / "data" / "crm", base_dir / "data"
        store = PersistentStore(old_root)
        await store.initialize()
        document = make_document("A", datetime(2024, 6, 1, 12, tzinfo=TZ))
        await store.save_document(document)

        result = await store.relocate(new_root, delete_old=True)

        assert result == new_root
        assert (new_root / "database.json").exists()
        assert (new_root / "invoices" / "2024" / "A.json").exists()
        assert not (old_root / "database.json").exists()
        assert await store.load_document(document.id) == document

    @pytest.mark.asyncio
    async def test_reset_all_data(self, base_dir):
        store = PersistentStore(base_dir)
        await store.initialize()
        await store.mutate(lambda db: setattr(db.settings, "next_invoice_number", 99))
        await store.save_document(make_document("A", datetime(2024, 1, 1, 12, tzinfo=TZ)))
        await store.save_document(make_document("B", datetime(2024, 1, 1, 12, tzinfo=TZ), "offer"))

        database = await store.reset_all_data()

        assert await store.list_documents() == []
        fresh = empty_database(database.settings.updated_at)
        assert database.to_json() == fresh.to_json()
        assert (base_dir / "offers").is_dir()
        assert json.loads((base_dir / "database.json").read_text())["settings"][
            "nextInvoiceNumber"
        ] == 1
