"""Tests for monthly fusion: duplicate keys, merging, restore and sessions.

All persistence goes through an in-memory store; export files are written
under pytest's ``tmp_path``.
"""

import json
from datetime import date, datetime
from pathlib import Path

import pytest

from pos_bundles.exceptions import ConfigError, MergeStateError
from pos_bundles.fusion.keys import detect_internal_duplicates, format_number, sale_key
from pos_bundles.fusion.merge import build_metadata, merge_datasets
from pos_bundles.fusion.service import DATASET_KEY, HISTORY_KEY, MAX_HISTORY, MonthlyFusionService
from pos_bundles.fusion.session import MergeSession, MergeState
from pos_bundles.storage import MemoryJsonStore
from pos_bundles.types import CumulativeDataset
from tests.helpers import make_line


@pytest.fixture
def service(store: MemoryJsonStore) -> MonthlyFusionService:
    return MonthlyFusionService(store)


class TestKeys:
    def test_key_layout(self) -> None:
        line = make_line("4012", quantity=2, amount=25, name="VERRE VN", store="Ramatuelle")
        assert sale_key(line) == "2025-01-15|4012|VERRE VN|Ramatuelle|2|25"

    def test_integral_numbers_compare_equal(self) -> None:
        assert sale_key(make_line("1", quantity=3, amount=9)) == sale_key(
            make_line("1", quantity=3.0, amount=9.0)
        )

    def test_amounts_are_exact(self) -> None:
        assert format_number(12.5) == "12.5"
        assert sale_key(make_line("1", amount=12.5)) != sale_key(make_line("1", amount=12.50001))

    def test_undated_line(self) -> None:
        assert sale_key(make_line("1", day=None)).startswith("|1|")


class TestInternalDuplicates:
    def test_pair_counts_once(self) -> None:
        line = make_line("4012", quantity=2, amount=25)
        report = detect_internal_duplicates([line, make_line("4012", quantity=2, amount=25)])

        assert report.total == 1
        assert report.has_duplicates
        assert len(report.details) == 1
        assert report.details[0].occurrence_count == 2
        assert report.details[0].date == "2025-01-15"

    def test_triple(self) -> None:
        lines = [make_line("1", amount=5) for _ in range(3)] + [make_line("2", amount=5)]
        report = detect_internal_duplicates(lines)
        assert report.total == 2
        assert report.details[0].occurrence_count == 3

    def test_no_duplicates(self) -> None:
        report = detect_internal_duplicates([make_line("1"), make_line("2")])
        assert report.total == 0
        assert report.details == []


class TestMergeDatasets:
    def test_every_colliding_line_is_eliminated(self) -> None:
        existing_lines = [make_line(str(i), amount=i) for i in range(4)]
        existing = CumulativeDataset(existing_lines, build_metadata(existing_lines))
        incoming = [make_line(str(i), amount=i) for i in range(4)]

        result = merge_datasets(existing, incoming, eliminate_duplicates=True)

        assert result.merged_count == len(existing_lines)
        assert result.duplicates_eliminated == len(incoming)
        assert result.months_added == []

    def test_duplicates_inside_incoming_batch(self) -> None:
        """Two identical lines, nothing stored yet: one survives."""
        batch = [make_line("4012", amount=25), make_line("4012", amount=25)]

        assert detect_internal_duplicates(batch).total == 1
        result = merge_datasets(CumulativeDataset(), batch, eliminate_duplicates=True)

        assert len(result.dataset.lines) == 1
        assert result.duplicates_eliminated == 1

    def test_without_elimination_everything_is_appended(self) -> None:
        batch = [make_line("1", amount=5), make_line("1", amount=5)]
        result = merge_datasets(CumulativeDataset(), batch)
        assert result.merged_count == 2
        assert result.duplicates_eliminated == 0
        assert result.internal_duplicates.total == 1

    def test_metadata_ignores_undated_lines(self) -> None:
        batch = [
            make_line("1", day=datetime(2025, 2, 3)),
            make_line("2", day=None),
            make_line("3", day=datetime(2025, 1, 30)),
        ]

        result = merge_datasets(CumulativeDataset(), batch)

        meta = result.dataset.metadata
        assert meta.known_months == ["2025-01", "2025-02"]
        assert meta.period_start == "2025-01-30"
        assert meta.period_end == "2025-02-03"
        assert meta.line_count == 3
        assert result.months_added == ["2025-01", "2025-02"]

    def test_existing_dataset_is_not_modified(self) -> None:
        existing = CumulativeDataset([make_line("1")])
        merge_datasets(existing, [make_line("2")])
        assert len(existing.lines) == 1


class TestService:
    def test_merge_persists_and_reloads(
        self, service: MonthlyFusionService, store: MemoryJsonStore
    ) -> None:
        result = service.merge([make_line("4012", quantity=2, amount=25)])

        assert result.success
        assert store.load(DATASET_KEY)["ventes"][0]["id"] == "4012"
        reloaded = service.load()
        assert len(reloaded) == 1
        assert reloaded.lines[0].amount_incl_tax == 25
        assert reloaded.metadata.known_months == ["2025-01"]

    def test_second_merge_with_elimination(self, service: MonthlyFusionService) -> None:
        service.merge([make_line("1", amount=5), make_line("2", amount=6)])

        result = service.merge(
            [make_line("2", amount=6), make_line("3", amount=7)], eliminate_duplicates=True
        )

        assert result.existing_count == 2
        assert result.merged_count == 3
        assert result.duplicates_eliminated == 1

    def test_history_is_capped(self, service: MonthlyFusionService, store: MemoryJsonStore) -> None:
        for i in range(MAX_HISTORY + 3):
            service.merge([make_line(str(i))])
        history = service.merge_history()
        assert len(history) == MAX_HISTORY
        assert history[-1]["merged_count"] == MAX_HISTORY + 3
        assert store.load(HISTORY_KEY) == history

    def test_unreadable_dataset_fails_merge(
        self, service: MonthlyFusionService, store: MemoryJsonStore
    ) -> None:
        store.save(DATASET_KEY, {"metadata": {}})

        result = service.merge([make_line("1")])

        assert not result.success
        assert store.load(DATASET_KEY) == {"metadata": {}}

    def test_save_failure_reports_error(self, store: MemoryJsonStore) -> None:
        store.quota_bytes = 10
        result = MonthlyFusionService(store).merge([make_line("1")])
        assert not result.success
        assert "Save failed" in result.message
        assert store.load(DATASET_KEY) is None

    def test_statistics_and_wipe(self, service: MonthlyFusionService) -> None:
        service.merge([make_line("1"), make_line("2", day=datetime(2025, 3, 1))])

        stats = service.statistics()
        assert stats["line_count"] == 2
        assert stats["known_months"] == ["2025-01", "2025-03"]
        assert stats["merges"] == 1

        service.wipe()
        assert len(service.load()) == 0
        assert service.merge_history() == []


class TestRestore:
    def test_restore_replaces_dataset(self, service: MonthlyFusionService, tmp_path: Path) -> None:
        service.merge([make_line("old")])
        backup = tmp_path / "backup.json"
        backup.write_text(
            json.dumps(
                {
                    "ventes": [
                        {"id": "A", "produit": "VERRE", "quantite": 2, "montantTTC": 10,
                         "date": "2025-04-02", "boutique": "Gassin"},
                        {"id": "B", "productName": "SEAU", "quantity": 1, "amountInclTax": 30,
                         "date": "2025-05-10"},
                    ]
                }
            ),
            encoding="utf-8",
        )

        result = service.restore_from_file(backup)

        assert result.success
        dataset = service.load()
        assert [line.id for line in dataset.lines] == ["A", "B"]
        assert dataset.lines[0].store == "Gassin"
        assert dataset.lines[0].unit_price_incl_tax == 5
        assert dataset.metadata.known_months == ["2025-04", "2025-05"]

    def test_bad_document_leaves_dataset_untouched(
        self, service: MonthlyFusionService, tmp_path: Path
    ) -> None:
        service.merge([make_line("keep")])
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"rows": []}), encoding="utf-8")

        result = service.restore_from_file(bad)

        assert not result.success
        assert [line.id for line in service.load().lines] == ["keep"]

    def test_invalid_json(self, service: MonthlyFusionService, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        assert not service.restore_from_file(bad).success
        assert not service.restore_from_file(tmp_path / "missing.json").success


def test_export_files_layout(store: MemoryJsonStore, tmp_path: Path) -> None:
    service = MonthlyFusionService(store, exports_dir=tmp_path)
    today = date.today().isoformat()

    result = service.merge(
        [make_line("1", day=datetime(2025, 1, 5)), make_line("2", day=datetime(2025, 1, 6))]
    )

    assert result.saved_files == [
        f"Ventes-Mensuelles/2025/01-Janvier/ventes-2025-01-{today}.json",
        f"Ventes-Mensuelles/ventes-cumulatives-{today}.json",
    ]
    month_doc = json.loads((tmp_path / result.saved_files[0]).read_text(encoding="utf-8"))
    assert len(month_doc["ventes"]) == 2
    assert month_doc["metadata"]["known_months"] == ["2025-01"]


def test_export_files_without_exports_dir(service: MonthlyFusionService) -> None:
    with pytest.raises(ConfigError):
        service.export_files(CumulativeDataset(), "2025-01")


class TestMergeSession:
    def test_clean_batch_merges_immediately(self, service: MonthlyFusionService) -> None:
        session = MergeSession(service)
        report = session.detect([make_line("1"), make_line("2")])

        assert not report.has_duplicates
        assert session.state is MergeState.PERSISTED
        assert session.result.merged_count == 2

    def test_clean_batch_checks_history_when_asked(self, service: MonthlyFusionService) -> None:
        batch = [make_line("1"), make_line("2")]
        service.merge(batch)

        session = MergeSession(service)
        session.detect(batch, eliminate_duplicates=True)

        assert session.state is MergeState.PERSISTED
        assert session.result.duplicates_eliminated == 2
        assert len(service.load()) == 2

    def test_duplicates_wait_for_user_choice(self, service: MonthlyFusionService) -> None:
        session = MergeSession(service)
        session.detect([make_line("1"), make_line("1")])
        assert session.state is MergeState.AWAITING_USER_CHOICE

        result = session.confirm(eliminate_duplicates=True)

        assert result.merged_count == 1
        assert session.state is MergeState.PERSISTED

    def test_cancel(self, service: MonthlyFusionService) -> None:
        session = MergeSession(service)
        session.detect([make_line("1"), make_line("1")])
        session.cancel()
        assert session.state is MergeState.IDLE
        assert len(service.load()) == 0

    def test_out_of_order_calls(self, service: MonthlyFusionService) -> None:
        session = MergeSession(service)
        with pytest.raises(MergeStateError):
            session.confirm(eliminate_duplicates=False)
        with pytest.raises(MergeStateError):
            session.cancel()
        session.detect([make_line("1"), make_line("1")])
        with pytest.raises(MergeStateError):
            session.detect([make_line("2")])

    def test_failed_merge_returns_to_idle(self, store: MemoryJsonStore) -> None:
        store.quota_bytes = 10
        session = MergeSession(MonthlyFusionService(store))
        session.detect([make_line("1")])
        assert session.state is MergeState.IDLE
        assert not session.result.success
