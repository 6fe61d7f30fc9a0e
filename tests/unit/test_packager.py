"""Unit tests for the packager."""

import os
from datetime import datetime, timezone

import pytest

from archival.errors import PackagingError
from archival.models import Defense, Enrollment
from archival.packager import Packager, bundle_location
from archival.restore import open_payload
from archival.schemas import DefenseSnapshot, EnrollmentSnapshot

from conftest import FIXED_NOW, OLD_DATE, write_document


def _enrollment(id: int = 42, **fields) -> Enrollment:
    return Enrollment(
        id=id,
        doctorant_id=fields.pop("doctorant_id", 7),
        status=fields.pop("status", "validated"),
        validation_date=fields.pop("validation_date", OLD_DATE),
        discipline="Mathematics",
        **fields,
    )


def _defense(id: int = 9, **fields) -> Defense:
    return Defense(
        id=id,
        enrollment_id=42,
        status="completed",
        defense_date=OLD_DATE,
        pv_signed=True,
        **fields,
    )


class TestBundleLocation:
    """Tests for bundle path derivation."""

    def test_layout(self):
        """Bundles land in {root}/{yyyy}/{MM}/{kind}_{id}_{timestamp}.zip.enc."""
        when = datetime(2026, 3, 5, 9, 4, 7, tzinfo=timezone.utc)
        path = bundle_location("/srv/archives", "enrollment", 42, when)
        assert path == os.path.join(
            "/srv/archives", "2026", "03", "enrollment_42_20260305_090407.zip.enc"
        )


class TestPackager:
    """Tests for Packager."""

    def test_packages_enrollment_documents(self, packager, uploads_root, archive_root, cipher):
        """Every document in the enrollment folder is zipped, encrypted and listed."""
        cv = write_document(uploads_root, "enrollments", "42", "cv.pdf", size=10 * 1024)
        diploma = write_document(uploads_root, "enrollments", "42", "diploma.pdf", size=20 * 1024)

        bundle = packager.package(_enrollment())

        assert bundle.kind == "enrollment"
        assert bundle.original_id == 42
        assert bundle.uncompressed_size == 30 * 1024
        assert bundle.compressed_size == len(bundle.encrypted_payload)
        assert sorted(bundle.original_file_paths) == sorted([cv, diploma])
        assert bundle.archived_by == "SYSTEM"
        assert bundle.archived_date == FIXED_NOW
        assert bundle.target_location == os.path.join(
            archive_root, "2026", "03", "enrollment_42_20260315_103045.zip.enc"
        )

        files = open_payload(bundle.encrypted_payload, cipher)
        assert set(files) == {"cv.pdf", "diploma.pdf"}
        assert len(files["diploma.pdf"]) == 20 * 1024

    def test_snapshot_copies_fields(self, packager):
        """The snapshot carries the row's archivable fields."""
        bundle = packager.package(_enrollment(thesis_subject="Graph minors"))
        assert isinstance(bundle.snapshot, EnrollmentSnapshot)
        assert bundle.snapshot.id == 42
        assert bundle.snapshot.status == "validated"
        assert bundle.snapshot.thesis_subject == "Graph minors"
        assert bundle.snapshot.has_derogation is False

    def test_packaging_does_not_touch_originals(self, packager, uploads_root):
        path = write_document(uploads_root, "enrollments", "42", "cv.pdf")
        packager.package(_enrollment())
        assert os.path.exists(path)

    def test_no_documents_gives_empty_bundle(self, packager, cipher):
        """A record without documents still archives its snapshot."""
        bundle = packager.package(_enrollment())
        assert bundle.original_file_paths == []
        assert bundle.uncompressed_size == 0
        assert open_payload(bundle.encrypted_payload, cipher) == {}

    def test_missing_document_is_skipped(self, packager, uploads_root, cipher):
        """A stored path that no longer exists is left out of the bundle."""
        report = write_document(uploads_root, "defenses", "reports", "report_9.pdf", size=2048)
        defense = _defense(
            pv_file_path="defenses/pv/pv_9.pdf",
            report_file_path="defenses/reports/report_9.pdf",
        )

        bundle = packager.package(defense)

        assert bundle.original_file_paths == [report]
        assert bundle.uncompressed_size == 2048
        assert set(open_payload(bundle.encrypted_payload, cipher)) == {"report_9.pdf"}

    def test_all_documents_missing_archives_snapshot(self, packager, cipher):
        """Stale stored paths still produce a snapshot-only bundle."""
        defense = _defense(pv_file_path="pv/gone.pdf", report_file_path="reports/gone.pdf")

        bundle = packager.package(defense)

        assert bundle.original_file_paths == []
        assert bundle.uncompressed_size == 0
        assert bundle.snapshot.pv_file_path == "pv/gone.pdf"
        assert open_payload(bundle.encrypted_payload, cipher) == {}

    def test_defense_bundle(self, packager, uploads_root, cipher):
        """Stored paths and the defense folder are bundled together."""
        write_document(uploads_root, "pv", "pv_9.pdf")
        write_document(uploads_root, "defenses", "9", "slides.pdf")

        bundle = packager.package(_defense(pv_file_path="pv/pv_9.pdf"))

        assert bundle.kind == "defense"
        assert isinstance(bundle.snapshot, DefenseSnapshot)
        assert bundle.target_location.endswith("defense_9_20260315_103045.zip.enc")
        assert set(open_payload(bundle.encrypted_payload, cipher)) == {"pv_9.pdf", "slides.pdf"}

    def test_duplicate_base_name_keeps_last(self, packager, uploads_root, cipher):
        """Only the file that made it into the ZIP is listed for deletion."""
        first = write_document(uploads_root, "pv", "pv.pdf", fill=b"1")
        last = write_document(uploads_root, "defenses", "9", "pv.pdf", fill=b"2")

        bundle = packager.package(_defense(pv_file_path="pv/pv.pdf"))

        assert bundle.original_file_paths == [last]
        assert first not in bundle.original_file_paths
        assert open_payload(bundle.encrypted_payload, cipher)["pv.pdf"].startswith(b"2")

    def test_unknown_type_is_skipped(self, packager):
        """Objects that are not archivable records produce no bundle."""
        assert packager.package(object()) is None

    def test_invalid_record_fails(self, packager):
        """A row that cannot be snapshotted is a packaging failure."""
        with pytest.raises(PackagingError, match="snapshotted"):
            packager.package(_enrollment(doctorant_id=None))

    def test_encryption_failure(self, uploads_root, archive_root):
        """Errors from the encryption provider surface as PackagingError."""

        class BrokenCipher:
            def encrypt(self, data):
                raise RuntimeError("hardware key unavailable")

            def decrypt(self, data):
                raise RuntimeError("hardware key unavailable")

        packager = Packager(uploads_root, archive_root, BrokenCipher())
        with pytest.raises(PackagingError, match="Encryption failed") as exc_info:
            packager.package(_enrollment())
        assert exc_info.value.kind == "enrollment"
        assert exc_info.value.entity_id == 42

    def test_custom_archived_by(self, uploads_root, archive_root, cipher):
        packager = Packager(
            uploads_root, archive_root, cipher, archived_by="ops@univ.example", clock=lambda: FIXED_NOW,
        )
        assert packager.package(_enrollment()).archived_by == "ops@univ.example"
