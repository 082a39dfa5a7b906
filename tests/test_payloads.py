"""Tests for payload records and identity hashing."""

from flexistream.payloads import (
    ArtifactPayload,
    artifact_identity,
    make_tool_payload,
    parse_payload_data,
    resolve_tool_type,
    tool_identity,
)


class TestIdentity:
    def test_tool_identity_known_value(self):
        # "a:" folds to 97 * 31 + 58 = 3065, which is "2d5" in base 36
        assert tool_identity("a", "") == "tool-2d5"

    def test_artifact_identity_prefix(self):
        assert artifact_identity("chart", "{}", "Sales").startswith("artifact-")

    def test_identity_is_deterministic(self):
        assert tool_identity("carousel", '{"a":1}') == tool_identity("carousel", '{"a":1}')
        assert artifact_identity("x", "p", None) == artifact_identity("x", "p", None)

    def test_identity_depends_on_content(self):
        assert tool_identity("carousel", '{"a":1}') != tool_identity("carousel", '{"a":2}')
        assert tool_identity("carousel", "{}") != tool_identity("weather", "{}")
        assert artifact_identity("x", "p", "One") != artifact_identity("x", "p", "Two")

    def test_missing_title_same_as_empty(self):
        assert artifact_identity("x", "p", None) == artifact_identity("x", "p", "")

    def test_non_ascii_payload(self):
        ident = tool_identity("carousel", '{"city":"São Paulo 😀"}')
        assert ident.startswith("tool-")
        assert ident == tool_identity("carousel", '{"city":"São Paulo 😀"}')


class TestResolveToolType:
    def test_aliases(self):
        assert resolve_tool_type("carousel") == "tool-carousel"
        assert resolve_tool_type("property-card") == "tool-property-card"
        assert resolve_tool_type("image-display") == "tool-image-display"

    def test_camel_case_aliases(self):
        assert resolve_tool_type("propertyCard") == "tool-property-card"
        assert resolve_tool_type("imageDisplay") == "tool-image-display"

    def test_case_insensitive(self):
        assert resolve_tool_type("Carousel") == "tool-carousel"

    def test_unknown_name(self):
        assert resolve_tool_type("Weather-Now") == "tool-weather-now"


class TestParsePayloadData:
    def test_empty(self):
        assert parse_payload_data("") == {}

    def test_object(self):
        assert parse_payload_data('{"a": 1}') == {"a": 1}

    def test_non_object_is_wrapped(self):
        assert parse_payload_data("[1, 2]") == {"value": [1, 2]}
        assert parse_payload_data("42") == {"value": 42}
        assert parse_payload_data("null") == {"value": None}

    def test_invalid_json_is_raw(self):
        assert parse_payload_data("not json") == {"raw": "not json"}


class TestParts:
    def test_artifact_part(self):
        payload = ArtifactPayload(
            artifact_type="chart", data={"x": 1}, identity="artifact-1", title="T"
        )
        assert payload.kind == "artifact"
        assert payload.to_part() == {
            "type": "artifact",
            "artifactType": "chart",
            "title": "T",
            "description": None,
            "data": {"x": 1},
            "id": "artifact-1",
            "state": "done",
        }

    def test_tool_part_shares_input_and_output(self):
        payload = make_tool_payload("tool-carousel", {"items": []}, "tool-1")
        assert payload.kind == "tool"
        part = payload.to_part()
        assert part["type"] == "tool-carousel"
        assert part["state"] == "output-available"
        assert part["output"] == part["input"] == {"items": []}
        assert part["toolCallId"] == "tool-1"
