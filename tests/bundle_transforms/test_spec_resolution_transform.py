import pytest
from bundle_model import OneofGroup, ProtoField
from bundle_transform_pipeline import run_bundle_transform_pipeline
from bundle_transforms.cross_reference_transform import CrossReferenceTransform
from bundle_transforms.identifier_catalog_transform import IdentifierCatalogTransform
from bundle_transforms.spec_resolution_transform import SchemaShapeError, SpecResolutionTransform
from js_ast import iter_postorder
from proto_wrangler import build_catalog, load_bundle_catalog


def module_source(body, name="Test.pb"):
    return (
        f'__d("{name}", ["WAProtoConst"], (function(t, n, r, o, a, i) {{\n'
        '  var e = o("WAProtoConst"), s = r("$InternalEnum");\n'
        f'{body}\n'
        '}), 1);\n'
    )


def fields_by_name(ident):
    return {f.name: f for f in ident.all_fields()}


def warning_kinds(catalog):
    return [w.kind for w in catalog.warnings]


def test_scalar_types_and_flags(bundle_source):
    catalog = build_catalog(bundle_source("nested_message.js"))
    image = catalog.find_identifier("Message$ImageMessage")
    fields = fields_by_name(image)
    assert fields["url"].type == "string"
    assert fields["url"].flags == ["required"]
    assert fields["scansSidecar"].flags == ["optional"]
    assert fields["scanLengths"].type == "uint32"
    assert fields["scanLengths"].flags == ["repeated", "packed"]
    assert fields["legacy"].flags == ["deprecated"]
    assert [f.id for f in image.all_fields()] == [1, 2, 3, 4, 5]


def test_local_alias_references(bundle_source):
    catalog = build_catalog(bundle_source("nested_message.js"))
    fields = fields_by_name(catalog.find_identifier("Message$ImageMessage"))
    assert fields["mediaType"].type == "Message$ImageMessage$MediaType"
    context = fields_by_name(catalog.find_identifier("ContextInfo"))
    assert context["priority"].type == "ContextInfo$Priority"
    assert context["quotedAd"].type == "ContextInfo$AdReplyInfo"


def test_map_of_scalars(bundle_source):
    catalog = build_catalog(bundle_source("report_status.js"))
    items = fields_by_name(catalog.find_identifier("Report"))["items"]
    assert items.type == "map<string, int32>"
    assert items.map_types == ("string", "int32")
    assert items.flags == ["repeated"]


def test_enum_reference_in_end_to_end_bundle(bundle_source):
    catalog = build_catalog(bundle_source("report_status.js"))
    status = fields_by_name(catalog.find_identifier("Report"))["status"]
    assert status.type == "Status"
    assert catalog.warnings == []


def test_cross_module_references(bundle_source):
    catalog = build_catalog(bundle_source("cross_module.js"))
    fields = fields_by_name(catalog.find_identifier("SyncActionData"))
    assert fields["identity"].type == "ADVDeviceIdentity"
    assert fields["encryption"].type == "ADVEncryptionType"
    assert fields["labels"].type == "map<string, ADVDeviceIdentity>"


def test_unresolved_reference_is_recorded_not_fatal(bundle_source):
    catalog = build_catalog(bundle_source("cross_module.js"))
    missing = fields_by_name(catalog.find_identifier("SyncActionData"))["missing"]
    assert missing.type is None
    assert missing.unresolved.reason == "unresolved cross-module reference"
    assert missing.unresolved.expression == "f.GhostMessage"
    assert warning_kinds(catalog) == ["unresolved_reference"]
    warning = catalog.warnings[0]
    assert (warning.module, warning.identifier, warning.field) == ("WAWebProtobufsSync.pb", "SyncActionData", "missing")
    assert [(i.name, f.name) for i, f in catalog.unresolved_fields()] == [("SyncActionData", "missing")]


def test_local_identifier_wins_over_cross_reference():
    source = module_source('''
      var f = o("Other.pb"), c = {}, d = {};
      d.internalSpec = {x: [1, e.TYPES.INT32]};
      c.internalSpec = {local: [1, e.TYPES.MESSAGE, f.ThingSpec]};
      i.ThingSpec = d;
      i.HolderSpec = c;
    ''') + module_source('''
      var c = {};
      c.internalSpec = {y: [1, e.TYPES.INT32]};
      i.ThingSpec = c;
    ''', name="Other.pb")
    catalog = build_catalog(source)
    transform = SpecResolutionTransform()
    module = catalog.module("Test.pb")
    ref = [n for n in _member_refs(module.statement) if n.property.name == "ThingSpec"][0]
    resolution = transform.resolve_reference(ref, module, False)
    assert (resolution.name, resolution.via) == ("Thing", "local")


def _member_refs(statement):
    return [n for n in iter_postorder(statement) if n.type == "MemberExpression" and n.object.type == "Identifier" and n.object.name == "f"]


def test_naming_convention_fallback():
    source = module_source('''
      var h = o("NotInBundle.pb"), c = {};
      c.internalSpec = {
        ext: [1, e.TYPES.MESSAGE, h.ExternalThingSpec],
        kind: [2, e.TYPES.ENUM, h.ExternalKindType]
      };
      i.HolderSpec = c;
    ''')
    catalog = build_catalog(source)
    fields = fields_by_name(catalog.find_identifier("Holder"))
    assert fields["ext"].type == "ExternalThing"
    assert fields["kind"].type == "ExternalKindType"


def test_external_enum_module_is_not_followed():
    source = module_source('''
      var c = {};
      c.internalSpec = {kind: [1, e.TYPES.MESSAGE, s.Kind]};
      i.HolderSpec = c;
    ''')
    catalog = build_catalog(source)
    assert fields_by_name(catalog.find_identifier("Holder"))["kind"].type is None
    assert warning_kinds(catalog) == ["unresolved_reference"]


def test_oneof_grouping_keeps_every_field(bundle_source):
    catalog = build_catalog(bundle_source("nested_message.js"))
    message = catalog.find_identifier("Message")
    groups = message.oneof_groups()
    assert [g.name for g in groups] == ["payload"]
    assert [f.name for f in groups[0].members] == ["conversation", "imageMessage"]
    assert [f.name for f in message.fields()] == ["contextInfo"]
    assert sum(len(g.members) for g in groups) + len(message.fields()) == 3
    assert isinstance(message.members[-1], OneofGroup)


def test_missing_oneof_member_is_reported():
    source = module_source('''
      var c = {};
      c.internalSpec = {
        a: [1, e.TYPES.STRING],
        b: [2, e.TYPES.STRING],
        __oneofs__: {choice: ["a", "ghost"]}
      };
      i.PickSpec = c;
    ''')
    catalog = build_catalog(source)
    pick = catalog.find_identifier("Pick")
    assert [f.name for f in pick.fields()] == ["b"]
    assert [f.name for f in pick.oneof_groups()[0].members] == ["a"]
    assert len(pick.all_fields()) == 2
    assert warning_kinds(catalog) == ["oneof_member_missing"]
    assert catalog.warnings[0].field == "ghost"


def test_unknown_spec_target_is_skipped():
    source = module_source('''
      var c = {}, z = {};
      c.internalSpec = {a: [1, e.TYPES.STRING]};
      z.internalSpec = {b: [1, e.TYPES.STRING]};
      i.KnownSpec = c;
    ''')
    catalog = build_catalog(source)
    assert [f.name for f in catalog.find_identifier("Known").all_fields()] == ["a"]
    assert warning_kinds(catalog) == ["unknown_spec_target"]


def test_unrecognized_member_shape_is_skipped():
    source = module_source('''
      var c = {};
      c.internalSpec = {a: [1, e.TYPES.STRING], b: "oops"};
      i.ShapeSpec = c;
    ''')
    catalog = build_catalog(source)
    assert [f.name for f in catalog.find_identifier("Shape").all_fields()] == ["a"]
    assert warning_kinds(catalog) == ["unrecognized_shape"]


def test_no_spec_table_matches_any_identifier_is_fatal():
    source = module_source('''
      var c = {};
      c.internalSpec = {a: [1, e.TYPES.INT32]};
    ''')
    with pytest.raises(SchemaShapeError):
        build_catalog(source)


def test_name_collision_warning():
    body = '''
      var c = {};
      c.internalSpec = {a: [1, e.TYPES.INT32]};
      i.DupSpec = c;
    '''
    catalog = build_catalog(module_source(body, "One.pb") + module_source(body, "Two.pb"))
    assert warning_kinds(catalog) == ["name_collision"]
    assert catalog.find_identifier("Dup").module == "Two.pb"


def test_resolution_does_not_modify_input_catalog(bundle_source):
    catalog = load_bundle_catalog(bundle_source("report_status.js"))
    catalogued = run_bundle_transform_pipeline(catalog, [CrossReferenceTransform(), IdentifierCatalogTransform()])
    resolved = SpecResolutionTransform().transform(catalogued)
    assert catalogued.modules[0].identifiers["Report"].members is None
    assert resolved.modules[0].identifiers["Report"].is_message
    assert isinstance(resolved.modules[0].identifiers["Report"].members[0], ProtoField)
