import io

import pytest

from rets_metadata.containers import parse_metadata
from rets_metadata.models import MetadataKind
from rets_metadata.tree import MetadataTree, build_tree, index_lookup_types


def _containers(sources):
    return {
        MetadataKind.parse(kind): parse_metadata(text) for kind, text in sources.items()
    }


def _compact(tag, attrs, columns, rows):
    attributes = " ".join(f'{k}="{v}"' for k, v in attrs.items())
    header = "<COLUMNS>\t" + "\t".join(columns) + "\t</COLUMNS>"
    data = "".join("<DATA>\t" + "\t".join(row) + "\t</DATA>" for row in rows)
    return f"<RETS><METADATA-{tag} {attributes}>{header}{data}</METADATA-{tag}></RETS>"


def test_builds_resources_classes_and_tables(sources):
    """Test resources, classes and tables are assembled."""
    tree = build_tree(_containers(sources))

    assert isinstance(tree, MetadataTree)
    assert sorted(tree) == ["office", "property"]

    prop = tree["property"]
    assert prop.id == "Property"
    assert prop.key_field == "LIST_ID"
    assert [c.name for c in prop.classes] == ["RES", "LND"]

    res = prop.find_class("RES")
    assert [t.system_name for t in res.tables] == ["LIST_PRICE", "STYLE", "FEATURES"]
    assert [t.system_name for t in prop.find_class("LND").tables] == ["ACRES"]

    office = tree["office"]
    assert [c.name for c in office.classes] == ["OFF"]
    assert office.classes[0].tables[0].system_name == "OFFICE_ID"


def test_tree_lookup_is_case_insensitive(sources):
    """Test resource keys are case-insensitive."""
    tree = build_tree(_containers(sources))
    assert tree["Property"] is tree["property"]
    assert tree["PROPERTY"] is tree["property"]
    assert "Property" in tree
    assert tree.get("OFFICE") is tree["office"]


def test_missing_resource_is_not_inserted(sources):
    """Test missing keys are never inserted."""
    tree = build_tree(_containers(sources))
    assert tree.get("Agent") is None
    with pytest.raises(KeyError):
        tree["Agent"]
    assert len(tree) == 2
    assert "agent" not in tree


def test_table_attributes_are_interpreted(sources):
    """Test table attributes are interpreted."""
    tree = build_tree(_containers(sources))
    price = tree["property"].find_class("RES").find_table("LIST_PRICE")
    assert price.data_type == "Decimal"
    assert price.max_length == 12
    assert price.precision == 2
    assert price.searchable is True
    assert price.required is True
    assert price.fields["LongName"] == "List Price"

    style = tree["property"].find_class("RES").find_table("STYLE")
    assert style.precision is None
    assert style.required is False


def test_lookup_values_are_denormalized_onto_tables(sources):
    """Test lookup values attach to their tables."""
    tree = build_tree(_containers(sources))
    style = tree["property"].find_class("RES").find_table("STYLE")

    assert style.is_lookup
    assert style.lookup.name == "L1"
    assert style.lookup.visible_name == "Style"
    assert [(v.long_value, v.short_value) for v in style.lookup.values] == [
        ("Ranch", "RNCH"),
        ("Colonial", "COL"),
    ]


def test_table_without_lookup_has_no_lookup(sources):
    """Test tables without a lookup name have no lookup."""
    tree = build_tree(_containers(sources))
    price = tree["property"].find_class("RES").find_table("LIST_PRICE")
    assert price.lookup_name == ""
    assert price.lookup is None
    assert not price.is_lookup


def test_unknown_lookup_name_leaves_lookup_absent():
    """Test an unknown lookup name leaves the lookup unset."""
    containers = {
        MetadataKind.RESOURCE: parse_metadata(
            _compact("RESOURCE", {}, ["ResourceID"], [["Property"]])
        ),
        MetadataKind.CLASS: parse_metadata(
            _compact("CLASS", {"Resource": "Property"}, ["ClassName"], [["RES"]])
        ),
        MetadataKind.TABLE: parse_metadata(
            _compact(
                "TABLE",
                {"Resource": "Property", "Class": "RES"},
                ["SystemName", "LookupName"],
                [["STATUS", "NOPE"]],
            )
        ),
    }
    tree = build_tree(containers)
    status = tree["property"].classes[0].tables[0]
    assert status.lookup_name == "NOPE"
    assert status.lookup is None


def test_lookup_types_without_lookup_row_still_attach():
    """Test lookup types attach without a LOOKUP row."""
    containers = {
        MetadataKind.RESOURCE: parse_metadata(
            _compact("RESOURCE", {}, ["ResourceID"], [["Property"]])
        ),
        MetadataKind.CLASS: parse_metadata(
            _compact("CLASS", {"Resource": "Property"}, ["ClassName"], [["RES"]])
        ),
        MetadataKind.TABLE: parse_metadata(
            _compact(
                "TABLE",
                {"Resource": "Property", "Class": "RES"},
                ["SystemName", "LookupName"],
                [["STYLE", "L1"]],
            )
        ),
        MetadataKind.LOOKUP_TYPE: parse_metadata(
            _compact(
                "LOOKUP_TYPE",
                {"Resource": "Property", "Lookup": "L1"},
                ["LongValue", "ShortValue", "Value"],
                [["Ranch", "RNCH", "R"], ["Colonial", "COL", "C"]],
            )
        ),
    }
    style = build_tree(containers)["property"].classes[0].tables[0]
    assert style.lookup is not None
    assert style.lookup.visible_name == ""
    assert [v.long_value for v in style.lookup.values] == ["Ranch", "Colonial"]


def test_lookups_are_scoped_per_resource(sources):
    """Test lookups do not leak across resources."""
    tree = build_tree(_containers(sources))
    index = index_lookup_types(_containers(sources))
    assert set(index) == {("Property", "L1"), ("Property", "FEAT")}
    assert tree["office"].classes[0].tables[0].lookup is None


def test_resolve_single_and_multi_lookup_values(sources):
    """Test resolving single and multi-valued lookups."""
    tree = build_tree(_containers(sources))
    res = tree["property"].find_class("RES")

    style = res.find_table("STYLE")
    assert style.resolve("R") == "Ranch"
    assert style.resolve("COL") == "Colonial"
    assert style.resolve("X") == "X"
    assert style.lookup.short_value_for("C") == "COL"
    assert style.lookup.long_value_for("missing") is None

    features = res.find_table("FEATURES")
    assert features.is_multi_lookup
    assert features.resolve("P,G") == ["Pool", "Garage"]

    assert res.find_table("LIST_PRICE").resolve("100000") == "100000"


def test_class_matching_is_case_sensitive():
    """Test class names match case-sensitively."""
    containers = {
        MetadataKind.RESOURCE: parse_metadata(
            _compact("RESOURCE", {}, ["ResourceID"], [["Property"]])
        ),
        MetadataKind.CLASS: parse_metadata(
            _compact("CLASS", {"Resource": "property"}, ["ClassName"], [["RES"]])
        ),
    }
    assert build_tree(containers)["property"].classes == []


def test_duplicate_resource_ids_last_wins():
    """Test the last duplicate resource wins."""
    containers = {
        MetadataKind.RESOURCE: parse_metadata(
            _compact(
                "RESOURCE",
                {},
                ["ResourceID", "Description"],
                [["Property", "first"], ["PROPERTY", "second"]],
            )
        ),
    }
    tree = build_tree(containers)
    assert len(tree) == 1
    assert tree["property"].description == "second"


def test_build_is_deterministic_and_leaves_containers_untouched(sources):
    """Test builds are repeatable and read-only."""
    containers = _containers(sources)
    before = [list(map(dict, c.rows)) for cs in containers.values() for c in cs]
    first = build_tree(containers)
    second = build_tree(containers)
    after = [list(map(dict, c.rows)) for cs in containers.values() for c in cs]

    assert first is not second
    assert first.to_dict() == second.to_dict()
    assert before == after


def test_print_tree_outlines_resource(sources):
    """Test print_tree outlines a resource."""
    tree = build_tree(_containers(sources))
    out = io.StringIO()
    tree["property"].print_tree(out)
    text = out.getvalue()
    assert "Resource: Property (Key Field: LIST_ID)" in text
    assert "LookupTable: STYLE" in text
    assert "Ranch -> R" in text
    assert "Table: ACRES" in text


def test_empty_container_map_builds_empty_tree():
    """Test an empty container map builds an empty tree."""
    assert len(build_tree({})) == 0
