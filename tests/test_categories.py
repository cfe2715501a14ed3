"""Tests for category parsing and listing section grouping."""

import pytest

from backend.src.core.categories import (
    Category,
    category_matches,
    classify_category,
    find_section_markers,
    parse_category,
)
from backend.src.services.catalog_fetcher import (
    group_sections,
    iter_sections,
    merge_stock_maps,
    section_product_codes,
)


def product_section(*codes):
    return {
        "componentType": "productRecommed",
        "props": [{"props": [{"productCode": code} for code in codes]}],
    }


def marker_section(text):
    return {"componentType": "image", "props": [{"alt": text}]}


def test_parse_category_accepts_value_and_label():
    assert parse_category("women") == Category.WOMEN
    assert parse_category(" MEN ") == Category.MEN
    assert parse_category("童装") == Category.KIDS
    assert parse_category(Category.BABY) == Category.BABY


def test_parse_category_rejects_unknown():
    with pytest.raises(ValueError):
        parse_category("PETS")


def test_men_does_not_match_women():
    assert category_matches(Category.WOMEN, "WOMEN")
    assert not category_matches(Category.MEN, "WOMEN")
    assert category_matches(Category.MEN, "男装")
    assert not category_matches(Category.MEN, None)


def test_classify_category():
    assert classify_category("女装") == Category.WOMEN
    assert classify_category("婴幼儿装") == Category.BABY
    assert classify_category("accessories") is None


def test_find_section_markers():
    assert find_section_markers(["男装 新品"]) == {Category.MEN}
    assert find_section_markers(["女装", "男装"]) == {Category.WOMEN, Category.MEN}
    assert find_section_markers(["banner"]) == set()


def test_iter_sections_accepts_list_or_mapping():
    sections = [product_section("a"), marker_section("女装")]
    assert iter_sections(sections) == sections
    assert iter_sections({"1": sections[0], "2": sections[1]}) == sections
    assert iter_sections("not a config") == []


def test_group_sections_assigns_buckets_in_order():
    config = [
        marker_section("女装 男装 童装"),  # navigation bar, names several categories
        product_section("w1", "w2"),
        product_section("w3"),
        marker_section("女装"),
        product_section("m1"),
        marker_section("男装"),
        product_section("orphan"),
    ]

    groups = group_sections(config)

    women_codes = [c for s in groups[Category.WOMEN] for c in section_product_codes(s)]
    men_codes = [c for s in groups[Category.MEN] for c in section_product_codes(s)]
    assert women_codes == ["w1", "w2", "w3"]
    assert men_codes == ["m1"]
    assert Category.KIDS not in groups


def test_marker_without_open_bucket_is_ignored():
    config = [marker_section("女装"), product_section("k1"), marker_section("童装")]

    groups = group_sections(config)

    assert list(groups) == [Category.KIDS]


def test_merge_stock_maps_sums_store_and_express():
    payload = {
        "resp": [
            {
                "skuStocks": {"sku1": 2, "sku2": "0"},
                "expressSkuStocks": {"sku1": 3, "sku3": 1},
            }
        ]
    }

    assert merge_stock_maps(payload) == {"sku1": 5, "sku2": 0, "sku3": 1}


def test_merge_stock_maps_rejects_malformed_payload():
    assert merge_stock_maps(None) is None
    assert merge_stock_maps({"resp": []}) is None
    assert merge_stock_maps({"resp": "x"}) is None
