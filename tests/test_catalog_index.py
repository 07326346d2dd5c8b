"""Tests for the catalog snapshot, its lookups and the disambiguation policy."""
from decimal import Decimal

from conftest import OTHER_TENANT, TENANT, add_product

from kyte_qbo.domain.catalog.index import CatalogIndex, CatalogProduct
from kyte_qbo.domain.catalog.repository import CatalogRepository


def product(id, name, company_id=TENANT, sku=None, barcode=None, external_item_id="1", archived=False):
    return CatalogProduct(
        id=id,
        company_id=company_id,
        name=name,
        sku=sku,
        barcode=barcode,
        price=Decimal("1.00"),
        tax_code_ref="TAX",
        external_item_id=external_item_id,
        is_archived=archived,
    )


def test_load_builds_snapshot_for_one_tenant(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    match = index.resolve(TENANT, sku="bw-100")

    assert match.method == "sku"
    assert match.product.id == catalog["blue_widget"].id
    assert match.product.price == Decimal("9.99")
    assert index.lookup(OTHER_TENANT, sku="BW-100") is None


def test_sku_takes_precedence_over_barcode_and_name(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    match = index.resolve(TENANT, sku="RW-200", barcode="7891234567895", name="Blue Widget")

    assert match.product.id == catalog["red_widget"].id
    assert match.method == "sku"


def test_barcode_lookup(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    match = index.resolve(TENANT, barcode=" 7891234567895 ")

    assert match.method == "barcode"
    assert match.product.id == catalog["blue_widget"].id


def test_name_lookup_ignores_case_punctuation_and_spacing(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    found = index.lookup(TENANT, name="  semolina   fine g.s 1kg ")

    assert found.id == catalog["semolina"].id


def test_name_lookup_prefers_non_archived(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    found = index.lookup(TENANT, name="corn flour")

    assert found.id == catalog["corn_flour"].id


def test_products_without_quickbooks_item_are_never_returned(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    assert index.lookup(TENANT, sku="GW-1") is None
    assert index.lookup(TENANT, name="Green Widget") is None


def test_equal_distance_tie_resolves_to_no_match():
    index = CatalogIndex([product(1, "Sugar Crystal 1kg"), product(2, "Sugar Crystal 1kg")])

    assert index.lookup(TENANT, name="sugar crystal 1kg") is None


def test_shortest_edit_distance_wins():
    index = CatalogIndex([product(1, "Rice Flour 500g"), product(2, "Rice Flour 5kg")])

    found = index.lookup(TENANT, name="rice flour 5kg")

    assert found.id == 2


def test_archived_only_candidates_still_match():
    index = CatalogIndex([product(7, "Old Biscuit", archived=True)])

    assert index.lookup(TENANT, name="Old Biscuit").id == 7


def test_resolution_is_independent_of_load_order():
    products = [product(3, "Cocoa Powder 200g"), product(1, "Cocoa Powder 250g"), product(2, "Cocoa Butter")]

    forward = CatalogIndex(products).lookup(TENANT, name="cocoa powder 250g")
    backward = CatalogIndex(list(reversed(products))).lookup(TENANT, name="cocoa powder 250g")

    assert forward.id == backward.id == 1


def test_unknown_tenant_and_empty_query_match_nothing(db, catalog):
    index = CatalogIndex.load(db, TENANT)

    assert index.lookup("nobody", sku="BW-100") is None
    assert index.lookup(TENANT) is None


def test_repository_exact_lookups(db, catalog):
    add_product(db, product_name="Blue Widget v2", sku=" bw-100 ", external_item_id="111")

    by_sku = CatalogRepository.find_by_sku(db, TENANT, "BW-100")
    by_barcode = CatalogRepository.find_by_barcode(db, TENANT, "7891234567895")

    assert [p.product_name for p in by_sku] == ["Blue Widget", "Blue Widget v2"]
    assert [p.id for p in by_barcode] == [catalog["blue_widget"].id]
    assert CatalogRepository.find_by_sku(db, OTHER_TENANT, "RW-200") == []
