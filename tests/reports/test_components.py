"""Component models, the valid-component check and CSV of single tables."""

import pytest
from pydantic import ValidationError

from services.reports import (
    BarChart,
    ChartSeries,
    Formatting,
    Meta,
    Parameters,
    Table,
    Text,
    VALID_COMPONENTS,
    create_chart_image_key,
    deserialize_components,
    is_valid_component,
    serialize_components,
)


class FancyText(Text):
    pass


def test_valid_components_are_accepted():
    assert len(VALID_COMPONENTS) == 10
    for component_class in VALID_COMPONENTS:
        assert is_valid_component(component_class.model_construct())


@pytest.mark.parametrize("candidate", ["text", {"kind": "text"}, 42, None, FancyText(value="x")])
def test_other_objects_are_rejected(candidate):
    assert not is_valid_component(candidate)


def test_unknown_fields_are_rejected():
    with pytest.raises(ValidationError):
        Text(value="x", colour="red")


def test_serialized_sequence_restores_classes_and_order():
    components = [
        Text(level="h2", value="Heading", editable=True, key="r/0"),
        Table(columns=["a"], rows=[[1], [None]]),
        Formatting(page_break=True),
        Parameters(name="R", params=[("from", "2024-01-01")]),
        Meta(data_post_url="http://x/1"),
        BarChart(title="c", labels=["l"], series=[ChartSeries(name="s", values=[1.5])]),
    ]

    payload = serialize_components(components)
    assert [item["kind"] for item in payload] == [
        "text", "table", "formatting", "parameters", "meta", "bar_chart",
    ]

    restored = deserialize_components(payload)
    assert [type(c) for c in restored] == [type(c) for c in components]
    assert restored[0].key == "r/0"
    assert restored[3].params == [("from", "2024-01-01")]
    assert restored[5].series[0].values == [1.5]


def test_chart_flag():
    assert BarChart().is_chart
    assert not Table().is_chart


def test_table_csv_defaults_to_semicolon_and_crlf():
    table = Table(columns=["id", "name"], rows=[[1, "a"], [2, None]])
    assert table.to_csv() == "id;name\r\n1;a\r\n2;\r\n"


def test_table_csv_quotes_delimiters():
    table = Table(rows=[["a;b", "c"]])
    assert table.to_csv(delimiter=";", line_feed="\n") == '"a;b";c\n'


def test_chart_image_key_format():
    assert create_chart_image_key("abc123", 4) == "abc123_4"
