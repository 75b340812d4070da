"""Tests for catalog loading and column discovery."""

import json
from pathlib import Path

import pandas as pd

from pos_bundles.catalog.store import CatalogStore, discover_columns
from pos_bundles.types import CatalogEntry


def test_discover_columns_by_synonym() -> None:
    cols = discover_columns(
        ["Identifiant mère", "Désignation", "Catégorie", "Prix achat HT", "PV TTC"]
    )
    assert cols == {"id": 0, "name": 1, "category": 2, "purchase": 3, "sale": 4}


def test_discover_columns_falls_back_to_unclaimed() -> None:
    cols = discover_columns(["Code", "Libellé"])
    assert cols == {"id": 0, "name": 1}


def test_from_rows_drops_incomplete_rows() -> None:
    catalog = CatalogStore.from_rows(
        ["Id", "Nom", "Prix vente"],
        [[4012.0, "VERRE VN", "12,50"], [None, "SANS ID", 1], ["4013", "", 1]],
    )
    assert len(catalog) == 1
    entry = catalog.by_id("4012")
    assert entry == CatalogEntry(id="4012", name="VERRE VN", sale_price_incl_tax=12.5)


def test_duplicate_ids_keep_first() -> None:
    catalog = CatalogStore([CatalogEntry("1", "A"), CatalogEntry("1", "B")])
    assert len(catalog) == 1
    assert catalog.by_id("1").name == "A"


def test_by_name_is_exact_and_case_insensitive(catalog: CatalogStore) -> None:
    assert catalog.by_name("  glass ").id == "200"
    assert catalog.by_name("GLAS") is None


class TestLoad:
    def test_csv(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.csv"
        path.write_text("Id,Nom,Categorie\n4012,VERRE VN,VERRE\n4013,SEAU,VASQUE ET SEAU\n")

        catalog = CatalogStore.load(path)

        assert [e.id for e in catalog] == ["4012", "4013"]
        assert catalog.by_id("4013").category == "VASQUE ET SEAU"

    def test_xlsx(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.xlsx"
        pd.DataFrame({"Référence": ["4012"], "Produit": ["VERRE VN"]}).to_excel(path, index=False)

        catalog = CatalogStore.load(path)

        assert catalog.by_name("verre vn").id == "4012"

    def test_json_shapes(self, tmp_path: Path) -> None:
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps({"headers": ["id", "nom"], "data": [["1", "A"], ["2", "B"]]}),
            encoding="utf-8",
        )
        assert len(CatalogStore.load(path)) == 2
        assert len(CatalogStore.from_json({"produits": [{"id": "1", "nom": "A"}]})) == 1
        assert len(CatalogStore.from_json([])) == 0

    def test_failures_give_empty_catalog(self, tmp_path: Path) -> None:
        assert len(CatalogStore.load(tmp_path / "missing.xlsx")) == 0
        assert len(CatalogStore.load(None)) == 0
        bad = tmp_path / "catalog.json"
        bad.write_text('{"unexpected": true}', encoding="utf-8")
        assert len(CatalogStore.load(bad)) == 0
