from onboarding.merge import changed_fields, merge_data


def test_merge_with_nothing_is_identity():
    bag = {"businessName": "Acme", "services": ["cuts"]}
    assert merge_data(bag, None) == bag
    assert merge_data(bag, {}) == bag


def test_lists_are_unioned_in_order():
    merged = merge_data({"services": ["cuts"]}, {"services": ["cuts", "color"]})
    assert merged["services"] == ["cuts", "color"]


def test_list_union_compares_structured_items():
    photo = {"url": "a.jpg", "category": "logo"}
    merged = merge_data({"photos": [photo]}, {"photos": [dict(photo), {"url": "b.jpg"}]})
    assert merged["photos"] == [photo, {"url": "b.jpg"}]


def test_nested_mappings_merge_recursively():
    merged = merge_data(
        {"address": {"street": "123 Main St", "city": "Springfield"}},
        {"address": {"state": "IL", "zip": "62701"}},
    )
    assert merged["address"] == {"street": "123 Main St", "city": "Springfield", "state": "IL", "zip": "62701"}


def test_scalars_overwrite_and_none_is_skipped():
    merged = merge_data({"phone": "1", "email": "a@b.co"}, {"phone": "2", "email": None})
    assert merged == {"phone": "2", "email": "a@b.co"}


def test_merge_is_idempotent():
    bag = {"services": ["cuts"], "address": {"zip": "62701"}}
    patch = {"services": ["color"], "address": {"state": "IL"}, "phone": "555"}
    once = merge_data(bag, patch)
    assert merge_data(once, patch) == once
    assert merge_data(bag, bag) == bag
    assert merge_data(once, once) == once


def test_merge_never_removes_keys_or_mutates_inputs():
    bag = {"services": ["cuts"], "greeted": True}
    patch = {"services": ["color"]}
    merged = merge_data(bag, patch)
    assert set(bag) <= set(merged)
    assert bag == {"services": ["cuts"], "greeted": True}
    merged["services"].append("perm")
    assert patch == {"services": ["color"]}


def test_changed_fields():
    assert changed_fields({"a": 1, "b": 2}, {"a": 1, "b": 3, "c": 4}) == {"b", "c"}
    assert changed_fields({}, {}) == set()
