"""Tests for the shared XML and text parsing helpers."""

from bgg_sync.bgg.parsing import (
    as_list,
    attr,
    child,
    clean_description,
    parse_int,
    parse_rating,
    parse_xml,
    parse_year,
    text,
    xml_items,
)


def test_as_list_normalizes_every_shape():
    assert as_list(None) == []
    assert as_list({"@id": "1"}) == [{"@id": "1"}]
    assert as_list([{"@id": "1"}, {"@id": "2"}]) == [{"@id": "1"}, {"@id": "2"}]
    assert as_list("text") == ["text"]


def test_single_child_is_a_dict_and_repeated_children_a_list():
    data = parse_xml("""
        <item id="1">
            <name type="primary" value="Solo"/>
            <link type="a" value="x"/>
            <link type="b" value="y"/>
        </item>
    """)
    item = data["item"]
    assert item["@id"] == "1"
    assert isinstance(item["name"], dict)
    assert isinstance(item["link"], list)
    assert [link["@value"] for link in as_list(item["link"])] == ["x", "y"]
    assert [name["@value"] for name in as_list(item["name"])] == ["Solo"]


def test_leaf_without_attributes_collapses_to_text():
    data = parse_xml("<item><image> https://example.com/a.jpg </image></item>")
    assert data["item"]["image"] == "https://example.com/a.jpg"


def test_text_content_with_attributes_is_kept_under_text_key():
    data = parse_xml('<item><name sortindex="1">Catan</name></item>')
    assert data["item"]["name"] == {"@sortindex": "1", "#text": "Catan"}
    assert text(data["item"]["name"]) == "Catan"


def test_malformed_xml_returns_none():
    assert parse_xml("<items><item></items>") is None
    assert parse_xml("") is None
    assert xml_items("not xml") == []


def test_xml_items_handles_one_or_many_items():
    assert [item["@id"] for item in xml_items('<items><item id="1"/></items>')] == ["1"]
    assert [item["@id"] for item in xml_items('<items><item id="1"/><item id="2"/></items>')] == ["1", "2"]
    assert xml_items("<items/>") == []


def test_attr_and_child_navigation():
    item = parse_xml("""
        <item>
            <statistics><ratings><average value="7.5"/></ratings></statistics>
            <yearpublished value=""/>
        </item>
    """)["item"]
    assert attr(child(item, "statistics", "ratings", "average"), "value") == "7.5"
    assert attr(item.get("yearpublished"), "value") is None
    assert child(item, "missing", "deeper") is None


def test_text_reads_value_attribute():
    assert text({"@value": "https://example.com/t.jpg"}) == "https://example.com/t.jpg"
    assert text(None) is None
    assert text("   ") is None


def test_numeric_parsing():
    assert parse_int("4") == 4
    assert parse_int(" 12 ") == 12
    assert parse_int("abc") is None
    assert parse_int(None) is None
    assert parse_int("") is None


def test_year_zero_or_missing_is_none():
    assert parse_year("0") is None
    assert parse_year(0) is None
    assert parse_year(None) is None
    assert parse_year("") is None
    assert parse_year("1995") == 1995


def test_rating_rounds_to_one_decimal():
    assert parse_rating("8.59786") == 8.6
    assert parse_rating("7") == 7.0
    assert parse_rating("n/a") is None
    assert parse_rating("nan") is None
    assert parse_rating(None) is None


def test_clean_description_strips_html():
    assert clean_description("<p>Build&amp;trade <b>roads</b></p>") == "Build&trade roads"
    assert clean_description(None) is None
    assert clean_description("<br/>") is None


def test_clean_description_truncates_at_word_boundary():
    raw = " ".join(["meeple"] * 120)
    description = clean_description(raw, max_length=500)
    assert description.endswith("...")
    body = description[:-3]
    assert len(body) <= 500
    assert all(word == "meeple" for word in body.split(" "))
