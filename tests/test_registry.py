"""Tests for the composition registry and legacy component normalization."""

import json
from pathlib import Path

import pytest

from pos_bundles.compositions.normalize import parse_legacy_component, parse_registry_document
from pos_bundles.compositions.registry import LEGACY_STORE_KEY, STORE_KEY, CompositionRegistry
from pos_bundles.exceptions import DataQualityError
from pos_bundles.storage import MemoryJsonStore
from pos_bundles.types import Composition, CompositionComponent


class TestLegacyComponents:
    def test_name_and_quantity(self) -> None:
        """'WIDGET (3)' parses to name WIDGET, quantity 3."""
        comp = parse_legacy_component("WIDGET (3)")
        assert comp == CompositionComponent(id="WIDGET", name="WIDGET", quantity=3)

    def test_four_digit_token_is_the_id(self) -> None:
        comp = parse_legacy_component("VERRE VN 4021 (2)")
        assert comp is not None
        assert comp.id == "4021"
        assert comp.name == "VERRE VN 4021"

    def test_id_derived_from_name(self) -> None:
        comp = parse_legacy_component("  Seau à glace (1) ")
        assert comp is not None
        assert comp.id == "SEAU_A_GLACE"
        assert comp.name == "Seau à glace"

    @pytest.mark.parametrize("text", ["WIDGET", "WIDGET x3", "WIDGET (0)", "(2)", ""])
    def test_malformed_strings(self, text: str) -> None:
        assert parse_legacy_component(text) is None


class TestRegistryDocument:
    def test_flat_list(self) -> None:
        comps = parse_registry_document([{"id": "1", "nom": "A", "type": "Vasques"}])
        assert [(c.id, c.type) for c in comps] == [("1", "vasque")]

    def test_keyed_by_type(self) -> None:
        comps = parse_registry_document(
            {"trio": [{"id": "7", "nom": "TRIO"}], "pack": [{"id": "8", "nom": "PACK"}]}
        )
        assert [(c.id, c.type) for c in comps] == [("7", "trio"), ("8", "pack")]

    def test_entries_without_id_are_skipped(self) -> None:
        comps = parse_registry_document({"compositions": [{"nom": "NO ID"}, {"id": "9"}]})
        assert [c.id for c in comps] == ["9"]

    def test_unsupported_shape(self) -> None:
        with pytest.raises(DataQualityError):
            parse_registry_document("not a registry")
        with pytest.raises(DataQualityError):
            parse_registry_document({"version": 2})


def test_components_of_structured_is_unchanged(registry: CompositionRegistry) -> None:
    comp = registry.find_by_id("100")
    assert comp is not None
    assert registry.components_of(comp) is comp.components


def test_components_of_legacy_is_memoized(registry: CompositionRegistry) -> None:
    comp = registry.find_by_id("300")
    assert comp is not None
    first = registry.components_of(comp)
    assert [(c.name, c.quantity) for c in first] == [
        ("VASQUE INOX", 1),
        ("GLASS", 4),
        ("PAILLE BAMBOU", 2),
    ]
    assert registry.components_of(comp) is first


class TestLoading:
    def test_store_key_wins(self, registry: CompositionRegistry) -> None:
        assert registry.loaded_from == STORE_KEY
        assert len(registry) == 2
        assert "100" in registry

    def test_legacy_key_is_migrated(self) -> None:
        store = MemoryJsonStore()
        store.save(LEGACY_STORE_KEY, [{"id": "42", "nom": "OLD", "compositions": ["X (1)"]}])

        reg = CompositionRegistry(store)

        assert reg.load() == 1
        assert reg.loaded_from == LEGACY_STORE_KEY
        saved = store.load(STORE_KEY)
        assert saved["compositions"][0]["id"] == "42"
        assert saved["compositions"][0]["composants"][0]["nom"] == "X"

    def test_fallback_file(self, tmp_path: Path) -> None:
        ref = tmp_path / "compositions.json"
        ref.write_text(json.dumps({"vasque": [{"id": "3105", "nom": "VASQUE"}]}), encoding="utf-8")
        store = MemoryJsonStore()

        reg = CompositionRegistry(store, fallback_source=ref)

        assert reg.load() == 1
        assert reg.loaded_from == "fallback"
        assert reg.find_by_id("3105").type == "vasque"
        assert store.load(STORE_KEY) is not None

    def test_every_source_failing_gives_empty_registry(self, tmp_path: Path) -> None:
        reg = CompositionRegistry(MemoryJsonStore(), fallback_source=tmp_path / "missing.json")
        assert reg.load() == 0
        assert len(reg) == 0
        assert reg.loaded_from is None

    def test_emptied_registry_does_not_reload_fallback(self, tmp_path: Path) -> None:
        """Removing the last bundle must survive a reload."""
        ref = tmp_path / "compositions.json"
        ref.write_text(json.dumps([{"id": "100", "nom": "PACK A"}]), encoding="utf-8")
        store = MemoryJsonStore()
        reg = CompositionRegistry(store, fallback_source=ref)
        reg.load()
        assert reg.remove("100")

        reloaded = CompositionRegistry(store, fallback_source=ref)

        assert reloaded.load() == 0
        assert reloaded.loaded_from == STORE_KEY
        assert reloaded.ids() == []
        assert store.load(STORE_KEY) == {"compositions": []}

    def test_fallback_over_http(self) -> None:
        class Response:
            content = json.dumps([{"id": "55", "nom": "PACK WEB"}]).encode("utf-8")

            def raise_for_status(self) -> None:
                pass

        class Session:
            def __init__(self) -> None:
                self.urls: list[str] = []

            def get(self, url: str) -> Response:
                self.urls.append(url)
                return Response()

        session = Session()
        reg = CompositionRegistry(
            MemoryJsonStore(),
            fallback_source="https://example.com/compositions.json",
            session=session,
        )

        assert reg.load() == 1
        assert session.urls == ["https://example.com/compositions.json"]


class TestMutations:
    def test_add_rejects_existing_id(self, registry: CompositionRegistry) -> None:
        assert registry.add(Composition(id="100", name="DUP")) is False
        assert registry.find_by_id("100").name == "PACK A"

    def test_add_persists(self, registry: CompositionRegistry, store: MemoryJsonStore) -> None:
        assert registry.add(Composition(id="700", name="NEW", type="trio"))
        ids = [c["id"] for c in store.load(STORE_KEY)["compositions"]]
        assert ids == ["100", "300", "700"]

    def test_modify_unknown_id(self, registry: CompositionRegistry) -> None:
        assert registry.modify("nope", Composition(id="nope", name="X")) is False

    def test_modify_rename(self, registry: CompositionRegistry) -> None:
        updated = Composition(id="101", name="PACK A+", type="pack")
        assert registry.modify("100", updated)
        assert "100" not in registry
        assert registry.find_by_id("101").name == "PACK A+"
        assert registry.ids() == ["101", "300"]

    def test_modify_rename_onto_existing_id(self, registry: CompositionRegistry) -> None:
        assert registry.modify("100", Composition(id="300", name="CLASH")) is False

    def test_remove(self, registry: CompositionRegistry) -> None:
        assert registry.remove("300")
        assert registry.remove("300") is False
        assert registry.ids() == ["100"]

    def test_failed_save_leaves_registry_unchanged(self) -> None:
        store = MemoryJsonStore()
        reg = CompositionRegistry(store)
        assert reg.add(Composition(id="1", name="SMALL"))
        store.quota_bytes = 1

        assert reg.add(Composition(id="2", name="TOO BIG")) is False
        assert reg.ids() == ["1"]


def test_search_and_export(registry: CompositionRegistry) -> None:
    assert [c.id for c in registry.search("vasque")] == ["300"]
    assert [c.id for c in registry.search("10")] == ["100"]

    exported = registry.export()

    assert exported["metadata"]["count"] == 2
    assert exported["metadata"]["by_type"] == {"pack": 1, "vasque": 1}
    legacy = exported["compositions"][1]
    assert [c["nom"] for c in legacy["composants"]] == ["VASQUE INOX", "GLASS", "PAILLE BAMBOU"]
