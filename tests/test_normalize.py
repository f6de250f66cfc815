from pathlib import Path

import pytest

from dataverse_openapi.parser.base import JsonSchemaFile, MalformedSchemaError, XmlMetadata
from dataverse_openapi.parser.normalize import (
    as_list,
    lookup,
    normalize,
    normalize_source,
    pascal_case,
    pluralize,
)
from dataverse_openapi.parser.xmltree import parse_xml

FIXTURES = Path(__file__).parent / "fixtures"


def _edmx(entity_types, entity_sets) -> dict:
    return {
        "edmx:Edmx": {
            "edmx:DataServices": {
                "Schema": {
                    "$": {"Namespace": "Microsoft.Dynamics.CRM"},
                    "EntityType": entity_types,
                    "EntityContainer": {"EntitySet": entity_sets},
                }
            }
        }
    }


ACCOUNT_TYPE = {
    "$": {"Name": "account"},
    "Key": {"PropertyRef": {"$": {"Name": "accountid"}}},
    "Property": [
        {"$": {"Name": "accountid", "Type": "Edm.Guid"}},
        {"$": {"Name": "name", "Type": "Edm.String", "MaxLength": "160"}},
    ],
}
ACCOUNT_SET = {"$": {"Name": "accounts", "EntityType": "Microsoft.Dynamics.CRM.account"}}


class TestHelpers:
    def test_as_list(self):
        assert as_list(None) == []
        assert as_list({"a": 1}) == [{"a": 1}]
        assert as_list([1, 2]) == [1, 2]

    def test_lookup_first_alias_wins(self):
        node = {"tables": [1], "entities": [2]}
        assert lookup(node, ("entities", "tables")) == [2]

    def test_lookup_ignores_case_and_namespace_prefix(self):
        assert lookup({"EDMX:EDMX": 1}, ("edmx:Edmx",)) == 1
        assert lookup({"edm:EntityType": 2}, ("EntityType",)) == 2

    def test_lookup_missing(self):
        assert lookup({"a": 1}, ("b",)) is None
        assert lookup("not a dict", ("b",), default=[]) == []

    def test_pluralize(self):
        assert pluralize("cs_envelope") == "cs_envelopes"
        assert pluralize("cs_signing_party") == "cs_signing_parties"
        assert pluralize("cs_address") == "cs_addresses"
        assert pluralize("cs_day") == "cs_days"

    def test_pascal_case(self):
        assert pascal_case("envelope") == "Envelope"
        assert pascal_case("signing_party") == "SigningParty"


class TestXmlTree:
    def test_single_and_repeated_children(self):
        tree = parse_xml('<root a="1"><item n="x"/><item n="y"/><only/></root>')
        node = tree["root"]
        assert node["$"] == {"a": "1"}
        assert isinstance(node["item"], list) and len(node["item"]) == 2
        assert node["only"] == {}

    def test_prefixed_tags(self):
        tree = parse_xml((FIXTURES / "metadata.xml").read_text(encoding="utf-8"))
        assert "edmx:Edmx" in tree
        assert "edmx:DataServices" in tree["edmx:Edmx"]

    @pytest.mark.parametrize("text", ["", "   ", "not xml at all", "<open>"])
    def test_invalid_xml_raises(self, text):
        with pytest.raises(MalformedSchemaError):
            parse_xml(text)


class TestNormalizeXml:
    def test_fixture_entities_in_document_order(self):
        source = XmlMetadata(text=(FIXTURES / "metadata.xml").read_text(encoding="utf-8"))
        entities = normalize_source(source)
        assert [e.name for e in entities] == ["account", "cs_envelope", "cs_document"]
        assert [e.set_name for e in entities] == ["accounts", "cs_envelopes", "cs_documents"]

    def test_primary_key_split_from_properties(self):
        entities = normalize(_edmx([ACCOUNT_TYPE], [ACCOUNT_SET]), "xml")
        account = entities[0]
        assert account.primary_key.name == "accountid"
        assert account.primary_key.read_only is True
        assert [p.name for p in account.properties] == ["name"]
        assert account.properties[0].max_length == 160
        assert account.id_param == "id"

    def test_single_node_equals_one_element_list(self):
        single = normalize(_edmx(ACCOUNT_TYPE, ACCOUNT_SET), "xml")
        listed = normalize(_edmx([ACCOUNT_TYPE], [ACCOUNT_SET]), "xml")
        assert single == listed

    def test_negative_max_length_dropped(self):
        account = {
            "$": {"Name": "account"},
            "Key": {"PropertyRef": {"$": {"Name": "accountid"}}},
            "Property": [
                {"$": {"Name": "accountid", "Type": "Edm.Guid"}},
                {"$": {"Name": "name", "Type": "Edm.String", "MaxLength": "-5"}},
                {"$": {"Name": "code", "Type": "Edm.String", "MaxLength": "0"}},
            ],
        }
        entity = normalize(_edmx(account, ACCOUNT_SET), "xml")[0]
        assert [(p.name, p.max_length) for p in entity.properties] == [("name", None), ("code", 0)]

    def test_nullable_false(self):
        source = XmlMetadata(text=(FIXTURES / "metadata.xml").read_text(encoding="utf-8"))
        envelope = [e for e in normalize_source(source) if e.name == "cs_envelope"][0]
        name = [p for p in envelope.properties if p.name == "cs_name"][0]
        assert name.nullable is False

    def test_base_type_properties_inherited(self):
        base = {"$": {"Name": "base", "Abstract": "true"}, "Property": {"$": {"Name": "ownerid", "Type": "Edm.Guid"}}}
        child = {"$": {"Name": "task", "BaseType": "Microsoft.Dynamics.CRM.base"}, "Property": {"$": {"Name": "subject", "Type": "Edm.String"}}}
        task_set = {"$": {"Name": "tasks", "EntityType": "Microsoft.Dynamics.CRM.task"}}
        entities = normalize(_edmx([base, child], task_set), "xml")
        assert [e.name for e in entities] == ["task"]
        assert [p.name for p in entities[0].properties] == ["ownerid", "subject"]

    def test_base_type_cycle_terminates(self):
        a = {"$": {"Name": "a", "BaseType": "b"}, "Property": {"$": {"Name": "x"}}}
        b = {"$": {"Name": "b", "BaseType": "a"}, "Property": {"$": {"Name": "y"}}}
        a_set = {"$": {"Name": "as", "EntityType": "a"}}
        entities = normalize(_edmx([a, b], a_set), "xml")
        assert {p.name for p in entities[0].properties} == {"x", "y"}

    def test_nameless_entity_skipped(self):
        nameless = {"Property": {"$": {"Name": "x", "Type": "Edm.String"}}}
        entities = normalize(_edmx([nameless, ACCOUNT_TYPE], [ACCOUNT_SET]), "xml")
        assert [e.name for e in entities] == ["account"]

    def test_set_with_unknown_type_skipped(self):
        bad_set = {"$": {"Name": "ghosts", "EntityType": "Microsoft.Dynamics.CRM.ghost"}}
        entities = normalize(_edmx([ACCOUNT_TYPE], [bad_set, ACCOUNT_SET]), "xml")
        assert [e.set_name for e in entities] == ["accounts"]

    def test_missing_container_yields_no_entities(self):
        tree = {"edmx:Edmx": {"edmx:DataServices": {"Schema": {"EntityType": ACCOUNT_TYPE}}}}
        assert normalize(tree, "xml") == []

    def test_duplicate_properties_keep_first(self):
        account = dict(ACCOUNT_TYPE)
        account["Property"] = ACCOUNT_TYPE["Property"] + [{"$": {"Name": "name", "Type": "Edm.Int32"}}]
        entities = normalize(_edmx([account], [ACCOUNT_SET]), "xml")
        assert [p.source_type for p in entities[0].properties] == ["Edm.String"]

    @pytest.mark.parametrize(
        "tree",
        [
            {},
            {"edmx:Edmx": {}},
            {"edmx:Edmx": {"edmx:DataServices": {}}},
            {"something": "else"},
            "garbage",
        ],
    )
    def test_missing_structure_raises(self, tree):
        with pytest.raises(MalformedSchemaError):
            normalize(tree, "xml")


class TestNormalizeSchemaFile:
    def test_prefixed_names(self):
        doc = {"tables": [{"logicalName": "envelope", "attributes": [{"logicalName": "status", "type": "String"}]}]}
        entity = normalize(doc, "schema-file", prefix="cs")[0]
        assert entity.name == "Envelope"
        assert entity.logical_name == "cs_envelope"
        assert entity.set_name == "cs_envelopes"
        assert entity.primary_key.name == "cs_envelopeid"
        assert entity.id_param == "cs_envelopeid"
        assert [p.name for p in entity.properties] == ["cs_status"]

    def test_primary_attribute(self):
        source = JsonSchemaFile(document={"tables": [{"logicalName": "envelope", "primaryAttribute": {"schemaName": "Name"}}]})
        entity = normalize_source(source, prefix="cs_")[0]
        assert entity.properties[0].name == "cs_name"
        assert entity.properties[0].max_length == 200

    def test_primary_attribute_given_as_name(self):
        doc = {"tables": [{"logicalName": "envelope", "primaryAttribute": "Name"}]}
        entity = normalize(doc, "schema-file", prefix="cs")[0]
        assert [(p.name, p.max_length) for p in entity.properties] == [("cs_name", 200)]

    def test_unusable_primary_attribute_warns(self, caplog):
        doc = {"tables": [{"logicalName": "envelope", "primaryAttribute": ["Name"]}]}
        with caplog.at_level("WARNING"):
            entity = normalize(doc, "schema-file")[0]
        assert entity.properties == []
        assert "Ignoring primaryAttribute on envelope" in caplog.text

    def test_negative_max_length_dropped(self):
        doc = {"tables": [{
            "logicalName": "envelope",
            "primaryAttribute": {"schemaName": "Name", "maxLength": -1},
            "attributes": [{"logicalName": "status", "type": "String", "maxLength": -5}],
        }]}
        entity = normalize(doc, "schema-file")[0]
        assert [(p.name, p.max_length) for p in entity.properties] == [("name", 200), ("status", None)]

    def test_existing_prefix_not_doubled(self):
        doc = {"tables": [{"logicalName": "cs_envelope", "attributes": [{"logicalName": "cs_status"}]}]}
        entity = normalize(doc, "schema-file", prefix="cs")[0]
        assert entity.logical_name == "cs_envelope"
        assert entity.name == "Envelope"
        assert entity.properties[0].name == "cs_status"

    def test_explicit_entity_set_name(self):
        doc = {"tables": [{"logicalName": "person", "entitySetName": "people"}]}
        assert normalize(doc, "schema-file")[0].set_name == "people"

    def test_single_table_and_attribute_shapes(self):
        single = {"tables": {"logicalName": "envelope", "attributes": {"logicalName": "status", "type": "String"}}}
        listed = {"tables": [{"logicalName": "envelope", "attributes": [{"logicalName": "status", "type": "String"}]}]}
        assert normalize(single, "schema-file", "cs") == normalize(listed, "schema-file", "cs")

    def test_alternative_key_casing(self):
        doc = {"Tables": [{"LogicalName": "envelope", "DisplayName": "Envelope", "Attributes": [{"LogicalName": "status", "Type": "Integer"}]}]}
        entity = normalize(doc, "schema-file")[0]
        assert entity.display_name == "Envelope"
        assert entity.properties[0].source_type == "Integer"

    def test_nameless_tables_and_attributes_skipped(self):
        doc = {"tables": [{"displayName": "No name"}, {"logicalName": "envelope", "attributes": [{"type": "String"}]}, "junk"]}
        entities = normalize(doc, "schema-file")
        assert [e.logical_name for e in entities] == ["envelope"]
        assert entities[0].properties == []

    def test_duplicate_tables_keep_first(self):
        doc = {"tables": [{"logicalName": "envelope", "description": "first"}, {"logicalName": "envelope", "description": "second"}]}
        entities = normalize(doc, "schema-file")
        assert len(entities) == 1
        assert entities[0].description == "first"

    @pytest.mark.parametrize("doc", [{}, {"other": []}, [], "garbage", None])
    def test_missing_tables_raises(self, doc):
        with pytest.raises(MalformedSchemaError):
            normalize(doc, "schema-file")

    def test_empty_tables_is_not_an_error(self):
        assert normalize({"tables": []}, "schema-file") == []


def test_unknown_source_kind():
    with pytest.raises(ValueError):
        normalize({}, "csv")
