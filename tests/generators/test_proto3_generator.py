from bundle_model import BundleModule, Catalog, EnumValue, Identifier, NestingIndex, OneofGroup, ProtoField
from generators.proto3_generator import UNRESOLVED_TYPE, Proto3Generator, generate_proto3_schema
from proto_checker import check_proto_text
from proto_wrangler import build_catalog
from wrangler_config import WranglerConfig

TIMESTAMP = "2024-01-31T12:00:00.000Z"


def make_catalog(*identifiers):
    nesting = NestingIndex()
    for ident in identifiers:
        nesting.register(ident.name, ident.nesting_path)
    module = BundleModule("Test.pb", None, identifiers={i.name: i for i in identifiers})
    return Catalog(modules=[module], nesting=nesting)


def render(catalog, config=None):
    return generate_proto3_schema(catalog, "2.3000.1", TIMESTAMP, config)


def test_field_lines_round_trip():
    message = Identifier("M", members=[
        ProtoField("a", 1, "int32"),
        ProtoField("b", 2, "string", ["repeated", "packed"]),
    ])
    text = render(make_catalog(message))
    assert "  int32 a = 1;\n" in text
    assert "  repeated string b = 2 [packed=true];\n" in text
    assert text.count("packed") == 1


def test_rendering_is_idempotent(bundle_source):
    catalog = build_catalog(bundle_source("nested_message.js"))
    first = render(catalog)
    second = render(catalog)
    assert first == second
    flags = [f.flags for f in catalog.find_identifier("Message$ImageMessage").all_fields()]
    assert ["repeated", "packed"] in flags


def test_required_and_optional_never_rendered():
    message = Identifier("M", members=[
        ProtoField("a", 1, "int32", ["required"]),
        ProtoField("b", 2, "string", ["optional"]),
        ProtoField("c", 3, "bytes", ["required", "repeated"]),
    ])
    text = render(make_catalog(message))
    assert "required " not in text
    assert "optional " not in text
    assert "  int32 a = 1;" in text
    assert "  repeated bytes c = 3;" in text


def test_packed_without_repeated_is_dropped():
    message = Identifier("M", members=[ProtoField("a", 1, "int32", ["packed"])])
    generator = Proto3Generator(make_catalog(message), "v", TIMESTAMP)
    text = generator.generate()
    assert "  int32 a = 1;" in text
    assert "packed" not in text
    assert [w.kind for w in generator.warnings] == ["packed_without_repeated"]


def test_map_field_has_no_label():
    message = Identifier("M", members=[
        ProtoField("items", 2, "map<string, int32>", ["repeated"], map_types=("string", "int32")),
    ])
    text = render(make_catalog(message))
    assert "  map<string, int32> items = 2;" in text


def test_unresolved_type_renders_placeholder():
    message = Identifier("M", members=[ProtoField("x", 1, None)])
    text = render(make_catalog(message))
    assert f"  {UNRESOLVED_TYPE} x = 1;" in text


def test_oneof_block():
    message = Identifier("M", members=[
        ProtoField("c", 3, "string"),
        OneofGroup("choice", [ProtoField("a", 1, "int32"), ProtoField("b", 2, "string")]),
    ])
    text = render(make_catalog(message))
    assert (
        "message M {\n"
        "  string c = 3;\n"
        "  oneof choice {\n"
        "    int32 a = 1;\n"
        "    string b = 2;\n"
        "  }\n"
        "}\n"
    ) in text


def test_enum_values_keep_declaration_order():
    enum = Identifier("E", enum_values=[EnumValue("B", 2), EnumValue("A", 0)])
    text = render(make_catalog(enum))
    assert "enum E {\n  B = 2;\n  A = 0;\n}\n" in text


def test_bare_identifier_is_reported():
    generator = Proto3Generator(make_catalog(Identifier("Lonely")), "v", TIMESTAMP)
    text = generator.generate()
    assert "// Unknown entity Lonely" in text
    assert [w.kind for w in generator.warnings] == ["bare_identifier"]


def test_top_level_sorted_and_header():
    catalog = make_catalog(
        Identifier("Zeta", members=[]),
        Identifier("Alpha", members=[ProtoField("x", 1, "int32")]),
        Identifier("Alpha$Inner", nesting_path="Alpha", members=[]),
    )
    text = render(catalog)
    assert text.startswith(
        'syntax = "proto3";\n'
        'package proto;\n'
        '\n'
        '/// WhatsApp Version: 2.3000.1\n'
        f'/// Generated on: {TIMESTAMP}\n'
        '/// Entities found: 2\n'
        '\n'
    )
    assert text.index("message Alpha {") < text.index("message Zeta {")
    assert "  message Inner {" in text
    assert text.endswith("}\n")


def test_config_changes_package_label_and_indent():
    message = Identifier("M", members=[ProtoField("a", 1, "int32")])
    config = WranglerConfig(package="wa", client_label="Client", indent_size=4)
    text = render(make_catalog(message), config)
    assert "package wa;" in text
    assert "/// Client Version: 2.3000.1" in text
    assert "    int32 a = 1;" in text


def test_nested_blocks(bundle_source):
    text = render(build_catalog(bundle_source("nested_message.js")))
    expected_message = (
        "message Message {\n"
        "  ContextInfo contextInfo = 17;\n"
        "  oneof payload {\n"
        "    string conversation = 1;\n"
        "    ImageMessage imageMessage = 3;\n"
        "  }\n"
        "  message ImageMessage {\n"
        "    string url = 1;\n"
        "    MediaType mediaType = 2;\n"
        "    bytes scansSidecar = 3;\n"
        "    repeated uint32 scanLengths = 4 [packed=true];\n"
        "    int64 legacy = 5;\n"
        "    enum MediaType {\n"
        "      UNKNOWN = 0;\n"
        "      IMAGE = 1;\n"
        "      VIDEO = 2;\n"
        "    }\n"
        "  }\n"
        "}\n"
    )
    expected_context = (
        "message ContextInfo {\n"
        "  string stanzaId = 1;\n"
        "  Priority priority = 2;\n"
        "  AdReplyInfo quotedAd = 3;\n"
        "  message AdReplyInfo {\n"
        "    string advertiserName = 1;\n"
        "  }\n"
        "  enum Priority {\n"
        "    NONE = -1;\n"
        "    LOW = 1;\n"
        "  }\n"
        "}\n"
    )
    assert expected_message in text
    assert expected_context in text
    assert "/// Entities found: 2" in text
    assert text.index("message ContextInfo {") < text.index("message Message {")


def test_every_nested_identifier_rendered_once_one_level_deeper(bundle_source):
    catalog = build_catalog(bundle_source("nested_message.js"))
    text = render(catalog)
    for ident in catalog.iter_identifiers():
        if not ident.nesting_path:
            continue
        depth = ident.nesting_path.count("$") + 1
        keyword = "message" if ident.is_message else "enum"
        short = ident.name[len(ident.nesting_path) + 1:]
        line = "  " * depth + f"{keyword} {short} {{\n"
        assert text.count(line) == 1, line


def test_field_type_nested_under_other_parent_uses_dotted_path():
    catalog = make_catalog(
        Identifier("A", members=[ProtoField("b", 1, "B$C")]),
        Identifier("B", members=[]),
        Identifier("B$C", nesting_path="B", members=[]),
    )
    text = render(catalog)
    assert "  B.C b = 1;" in text


def generate_with_warnings(catalog):
    generator = Proto3Generator(catalog, "v", TIMESTAMP)
    text = generator.generate()
    return text, generator.warnings


def test_nested_definition_with_missing_parent_is_kept():
    catalog = make_catalog(
        Identifier("Ghost$Child", nesting_path="Ghost", members=[ProtoField("a", 1, "int32")], module="Test.pb"),
        Identifier("Holder", members=[ProtoField("b", 1, "Ghost$Child")]),
    )
    text, warnings = generate_with_warnings(catalog)
    assert (
        "message Ghost {\n"
        "  message Child {\n"
        "    int32 a = 1;\n"
        "  }\n"
        "}\n"
    ) in text
    assert "  Ghost.Child b = 1;" in text
    assert "/// Entities found: 2" in text
    assert [(w.kind, w.identifier, w.module) for w in warnings] == [("orphan_nested", "Ghost$Child", "Test.pb")]
    assert check_proto_text(text).ok


def test_missing_parents_are_synthesized_at_every_level():
    catalog = make_catalog(
        Identifier("Ghost$Mid$Leaf", nesting_path="Ghost$Mid", enum_values=[EnumValue("A", 0)]),
        Identifier("Holder", members=[ProtoField("leaf", 1, "Ghost$Mid$Leaf")]),
    )
    text, warnings = generate_with_warnings(catalog)
    assert (
        "message Ghost {\n"
        "  message Mid {\n"
        "    enum Leaf {\n"
        "      A = 0;\n"
        "    }\n"
        "  }\n"
        "}\n"
    ) in text
    assert "  Ghost.Mid.Leaf leaf = 1;" in text
    assert [w.identifier for w in warnings] == ["Ghost$Mid", "Ghost$Mid$Leaf"]
    assert check_proto_text(text).ok


def test_shell_parent_with_children_renders_as_empty_message():
    catalog = make_catalog(
        Identifier("Parent"),
        Identifier("Parent$Child", nesting_path="Parent", members=[ProtoField("a", 1, "int32")]),
    )
    text, warnings = generate_with_warnings(catalog)
    assert (
        "message Parent {\n"
        "  message Child {\n"
        "    int32 a = 1;\n"
        "  }\n"
        "}\n"
    ) in text
    assert "Unknown entity" not in text
    assert [(w.kind, w.identifier) for w in warnings] == [("orphan_nested", "Parent$Child")]


def test_children_of_an_enum_move_to_top_level():
    catalog = make_catalog(
        Identifier("Kind", enum_values=[EnumValue("A", 0)]),
        Identifier("Kind$Extra", nesting_path="Kind", members=[ProtoField("a", 1, "int32")]),
        Identifier("User", members=[ProtoField("extra", 1, "Kind$Extra")]),
    )
    text, warnings = generate_with_warnings(catalog)
    assert "enum Kind {\n  A = 0;\n}\n" in text
    assert "\nmessage Extra {\n  int32 a = 1;\n}\n" in text
    assert "  Extra extra = 1;" in text
    assert "/// Entities found: 3" in text
    assert [(w.kind, w.identifier) for w in warnings] == [("orphan_nested", "Kind$Extra")]
    assert check_proto_text(text).ok


def test_dropped_modifiers_each_have_their_own_warning():
    message = Identifier("M", members=[
        ProtoField("m", 1, "map<string, int32>", ["repeated", "packed"], map_types=("string", "int32")),
        OneofGroup("choice", [
            ProtoField("p", 2, "int32", ["repeated", "packed"]),
            ProtoField("r", 3, "string", ["repeated"]),
        ]),
    ])
    text, warnings = generate_with_warnings(make_catalog(message))
    assert "  map<string, int32> m = 1;" in text
    assert "    int32 p = 2;" in text
    assert "    string r = 3;" in text
    assert [(w.kind, w.field) for w in warnings] == [
        ("packed_on_map", "m"),
        ("packed_in_oneof", "p"),
        ("repeated_in_oneof", "p"),
        ("repeated_in_oneof", "r"),
    ]
