"""
Field Mapper Tests

Event-name resolution and property mapping, including the reference
scenarios from the original plugin tests.
"""

import pytest
from hypothesis import given, strategies as st

from kinesis_ingestion.contracts import OutputEvent, PropertyMapping
from kinesis_ingestion.mapper import map_record, parse_mapping_spec, resolve_path

from .fixtures import TEST_EVENT


# =============================================================================
# STRATEGIES (Generators)
# =============================================================================

keys = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=8)
non_string_values = st.one_of(
    st.integers(),
    st.floats(allow_nan=False),
    st.booleans(),
    st.none(),
    st.lists(st.integers(), max_size=3),
    st.dictionaries(keys, st.integers(), max_size=3),
)


# =============================================================================
# REFERENCE SCENARIOS
# =============================================================================

class TestReferenceScenarios:

    def test_maps_event_and_property(self):
        assert map_record(TEST_EVENT, "event", "props.foo:foo") == OutputEvent(
            event="kinesis test",
            properties={"foo": "bar"}
        )

    def test_wrong_property_path_yields_empty_properties(self):
        assert map_record(TEST_EVENT, "event", "props.bar:foo") == OutputEvent(
            event="kinesis test",
            properties={}
        )

    def test_wrong_event_key_yields_none(self):
        assert map_record(TEST_EVENT, "wrong_event_key", "props.foo:foo") is None


# =============================================================================
# EVENT KEY RESOLUTION
# =============================================================================

class TestEventKey:

    def test_nested_event_key(self):
        payload = {"meta": {"name": "signup"}}
        assert map_record(payload, "meta.name", "").event == "signup"

    @pytest.mark.parametrize("value", ["", 0, None, False, {}])
    def test_falsy_event_name_yields_none(self, value):
        assert map_record({"event": value}, "event", "") is None

    def test_non_string_event_name_is_accepted(self):
        payload = {"event": {"kind": "click"}}
        assert map_record(payload, "event", "").event == {"kind": "click"}

    def test_intermediate_scalar_is_not_found(self):
        assert map_record({"event": "x"}, "event.name", "") is None

    def test_non_mapping_payload_yields_none(self):
        assert map_record(["event"], "event", "") is None

    @given(path=st.lists(keys, min_size=1, max_size=4), name=st.text(min_size=1))
    def test_resolved_truthy_value_becomes_event(self, path, name):
        payload = name
        for segment in reversed(path):
            payload = {segment: payload}
        result = map_record(payload, ".".join(path), "")
        assert result is not None
        assert result.event == name


# =============================================================================
# PROPERTY MAPPINGS
# =============================================================================

class TestPropertyMappings:

    def test_multiple_mappings(self):
        payload = {"event": "e", "a": "1", "b": {"c": "2"}}
        result = map_record(payload, "event", "a:first, b.c:second")
        assert result.properties == {"first": "1", "second": "2"}

    def test_missing_source_skips_only_that_key(self):
        payload = {"event": "e", "a": "1"}
        result = map_record(payload, "event", "missing:x,a:y")
        assert result.properties == {"y": "1"}

    @given(value=non_string_values)
    def test_non_string_value_is_absent(self, value):
        result = map_record({"event": "e", "v": value}, "event", "v:dest")
        assert result is not None
        assert "dest" not in result.properties

    @given(source=keys)
    def test_missing_source_is_absent_not_null(self, source):
        result = map_record({"event": "e"}, "event", f"nothere.{source}:dest")
        assert "dest" not in result.properties

    def test_token_without_colon_is_ignored(self):
        result = map_record({"event": "e", "a": "1"}, "event", "a")
        assert result.properties == {}
        assert "undefined" not in result.properties

    def test_empty_spec(self):
        assert map_record({"event": "e"}, "event", None).properties == {}


class TestParseMappingSpec:

    def test_parses_tokens_in_order(self):
        assert parse_mapping_spec("x.y:a,z:b") == (
            PropertyMapping(source_path="x.y", destination_key="a"),
            PropertyMapping(source_path="z", destination_key="b"),
        )

    @pytest.mark.parametrize("spec", ["a", "a:", ":b", "a:b:c", " , "])
    def test_malformed_tokens_dropped(self, spec):
        assert parse_mapping_spec(spec) == ()


class TestResolvePath:

    def test_found_none_is_distinguished_from_missing(self):
        assert resolve_path({"a": None}, "a") == (True, None)
        assert resolve_path({}, "a") == (False, None)
