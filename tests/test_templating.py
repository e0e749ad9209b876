from wfengine.runtime.templating import (
    MISSING,
    ResolvedInputs,
    descend,
    render_template,
    render_value,
    stringify,
)


def _inputs():
    return ResolvedInputs(
        payload={"city": "Oslo"},
        predecessors={"weather": {"temp": 4, "tags": ["cold", "dry"]}},
        ports={"context": "winter"},
        upstream={"in": {"city": "Oslo"}, "weather": {"temp": 4, "tags": ["cold", "dry"]}},
    )


def test_descend_handles_mappings_and_indices():
    value = {"items": [{"id": 7}]}
    assert descend(value, ["items", "0", "id"]) == 7
    assert descend(value, ["items", "5"]) is MISSING
    assert descend(value, ["items", "x"]) is MISSING
    assert descend("text", ["upper"]) is MISSING


def test_resolve_prefers_node_ids_then_ports_then_bare_fields():
    inputs = _inputs()
    assert inputs.resolve("weather.temp") == 4
    assert inputs.resolve("context") == "winter"
    assert inputs.resolve("city") == "Oslo"
    assert inputs.resolve("tags.1") == "dry"
    assert inputs.resolve("nowhere") is MISSING
    assert inputs.resolve("") is MISSING


def test_render_template_substitutes_and_blanks_unresolved():
    text = render_template("{{ city }} is {{weather.temp}}C, {{missing}}!", _inputs())
    assert text == "Oslo is 4C, !"


def test_render_template_serializes_structures():
    assert render_template("tags={{weather.tags}}", _inputs()) == 'tags=["cold", "dry"]'


def test_render_value_keeps_whole_placeholder_types():
    rendered = render_value(
        {"temp": "{{weather.temp}}", "label": "in {{city}}", "list": ["{{missing}}", 1]},
        _inputs(),
    )
    assert rendered == {"temp": 4, "label": "in Oslo", "list": [None, 1]}


def test_stringify():
    assert stringify(None) == ""
    assert stringify(MISSING) == ""
    assert stringify(1.5) == "1.5"
    assert stringify({"a": 1}) == '{"a": 1}'
