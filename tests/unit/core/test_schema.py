"""Unit tests for parameter schema normalization and validation."""

from taskpilot.core.domain.schema import check_schema, normalize_schema, validate_parameters


class TestNormalizeSchema:
    def test_empty_means_no_parameters(self):
        assert normalize_schema(None) == {"type": "object", "properties": {}, "required": []}
        assert normalize_schema({}) == {"type": "object", "properties": {}, "required": []}

    def test_json_schema_is_copied_not_shared(self):
        original = {"type": "object", "properties": {"q": {"type": "string"}}}
        normalized = normalize_schema(original)
        normalized["properties"]["q"]["type"] = "integer"

        assert original["properties"]["q"]["type"] == "string"
        assert normalized["required"] == []

    def test_compact_field_map(self):
        schema = normalize_schema(
            {
                "artist_id": {"type": "string", "required": True},
                "limit": {"type": "integer", "default": 10},
                "query": "string",
            }
        )

        assert schema["required"] == ["artist_id"]
        assert schema["properties"]["limit"] == {"type": "integer", "default": 10}
        assert schema["properties"]["query"] == {"type": "string"}

    def test_compact_nested_object(self):
        schema = normalize_schema(
            {"period": {"type": "object", "properties": {"year": {"type": "integer", "required": True}}}}
        )

        period = schema["properties"]["period"]
        assert period["properties"] == {"year": {"type": "integer"}}
        assert period["required"] == ["year"]


class TestCheckSchema:
    def test_valid_schema_has_no_problems(self):
        assert check_schema(normalize_schema({"a": "string"})) == []

    def test_required_field_must_be_declared(self):
        problems = check_schema({"type": "object", "properties": {}, "required": ["ghost"]})
        assert problems == ["Required field 'ghost' is not declared in properties"]

    def test_malformed_schema(self):
        problems = check_schema({"type": "object", "properties": {"a": {"type": 12}}})
        assert problems and problems[0].startswith("Malformed schema")


class TestValidateParameters:
    SCHEMA = normalize_schema(
        {
            "artist_id": {"type": "string", "required": True},
            "method": {"type": "string", "enum": ["paypal", "check"]},
        }
    )

    def test_valid(self):
        assert validate_parameters(self.SCHEMA, {"artist_id": "a", "method": "check"}) == []

    def test_reports_every_violation(self):
        violations = validate_parameters(self.SCHEMA, {"method": "cash"})

        assert len(violations) == 2
        assert any("artist_id" in v for v in violations)
        assert any(v.startswith("method:") for v in violations)

    def test_non_dict(self):
        assert validate_parameters(self.SCHEMA, "artist") == ["Parameters must be an object, got str"]
