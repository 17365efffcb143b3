import dataclasses

import pytest

from proto_schema.parser.proto_ast import (
    EnumConstantElement,
    EnumElement,
    ExtendElement,
    ExtensionsElement,
    FieldElement,
    FieldLabel,
    MessageElement,
    OneofElement,
    OptionElement,
    OptionKind,
    OptionValue,
    ProtoFile,
    ProtoSyntax,
    ReservedElement,
    RpcElement,
    ServiceElement,
)
from proto_schema.parser.proto_errors import ProtoParseError, ProtoValidationError


def _field(name: str, tag: int, type_name: str = "string", label=None) -> FieldElement:
    return FieldElement.builder(name).set_label(label).set_type(type_name).set_tag(tag).build()


class TestFieldBuilder:
    def test_builds_field(self):
        field = (
            FieldElement.builder("name")
            .set_label("required")
            .set_type("string")
            .set_tag(1)
            .set_documentation("The name.")
            .add_option(OptionElement.create("deprecated", True))
            .build()
        )
        assert field.label == FieldLabel.REQUIRED
        assert field.type_name == "string"
        assert field.tag == 1
        assert field.documentation == "The name."
        assert field.is_deprecated is True
        assert field.is_packed is False

    def test_label_absent_is_none(self):
        assert _field("name", 1).label is None

    def test_missing_tag(self):
        with pytest.raises(ProtoValidationError, match="no tag"):
            FieldElement.builder("name").set_type("string").build()

    def test_missing_type(self):
        with pytest.raises(ProtoValidationError):
            FieldElement.builder("name").set_tag(1).build()

    def test_empty_name(self):
        with pytest.raises(ProtoValidationError, match="non-empty"):
            _field("", 1)

    @pytest.mark.parametrize("tag", [0, -1, 19000, 19500, 19999, 536870912])
    def test_invalid_tags(self, tag):
        with pytest.raises(ProtoValidationError, match="Invalid tag"):
            _field("name", tag)

    def test_unknown_label(self):
        with pytest.raises(ProtoValidationError, match="Unknown field label"):
            FieldElement.builder("name").set_label("sometimes")

    def test_default_option(self):
        field = (
            FieldElement.builder("count")
            .set_label(FieldLabel.OPTIONAL)
            .set_type("int32")
            .set_tag(3)
            .add_option(OptionElement.create("default", 10))
            .build()
        )
        assert field.default == OptionValue.number(10)

    def test_constructor_runs_same_checks(self):
        with pytest.raises(ProtoValidationError):
            FieldElement(label=None, type_name="string", name="name", tag=19001)


class TestImmutability:
    def test_nodes_are_frozen(self):
        field = _field("name", 1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            field.name = "other"

    def test_sequences_are_tuples(self):
        option = OptionElement.create("deprecated", True)
        field = FieldElement(
            label=None, type_name="string", name="name", tag=1, options=[option]
        )
        assert field.options == (option,)

    def test_structural_equality(self):
        assert _field("name", 1) == _field("name", 1)
        assert _field("name", 1) != _field("name", 2)
        assert hash(_field("name", 1)) == hash(_field("name", 1))


class TestMessageBuilder:
    def test_duplicate_field_names(self):
        builder = MessageElement.builder("Message").add_field(_field("id", 1)).add_field(
            _field("id", 2)
        )
        with pytest.raises(ProtoValidationError, match="Duplicate name 'id'"):
            builder.build()

    def test_oneof_members_share_message_scope(self):
        oneof = OneofElement.builder("choice").add_field(_field("id", 2)).build()
        builder = MessageElement.builder("Message").add_field(_field("id", 1)).add_oneof(oneof)
        with pytest.raises(ProtoValidationError, match="Duplicate name 'id'"):
            builder.build()

    def test_nested_type_clashes_with_field(self):
        nested = MessageElement.builder("thing").build()
        builder = MessageElement.builder("Message").add_field(_field("thing", 1)).add_type(nested)
        with pytest.raises(ProtoValidationError):
            builder.build()

    def test_qualified_name_defaults_to_name(self):
        assert MessageElement.builder("Message").build().qualified_name == "Message"

    def test_empty_name(self):
        with pytest.raises(ProtoValidationError):
            MessageElement.builder("").build()

    def test_documentation_is_normalized(self):
        message = MessageElement.builder("Message").set_documentation("  indented\n").build()
        assert message.documentation == "indented"
        assert message.to_schema().startswith("// indented\nmessage Message {")

    def test_documentation_keeps_inner_blank_lines(self):
        message = (
            MessageElement.builder("Message")
            .set_documentation("\n  one \n\n\ttwo\n  \n")
            .build()
        )
        assert message.documentation == "one\n\ntwo"
        qualified = dataclasses.replace(message, qualified_name="pkg.Message")
        assert qualified.documentation == "one\n\ntwo"


class TestOtherBuilders:
    def test_oneof_member_with_label(self):
        labeled = _field("id", 1, label=FieldLabel.OPTIONAL)
        with pytest.raises(ProtoValidationError, match="must not have a label"):
            OneofElement.builder("choice").add_field(labeled).build()

    def test_enum_constants(self):
        enum = (
            EnumElement.builder("Kind")
            .add_constant(EnumConstantElement.builder("A").set_tag(1).build())
            .add_constant(EnumConstantElement.builder("B").set_tag(2).build())
            .build()
        )
        assert [c.name for c in enum.constants] == ["A", "B"]

    def test_enum_duplicate_constants(self):
        builder = (
            EnumElement.builder("Kind")
            .add_constant(EnumConstantElement.builder("A").set_tag(1).build())
            .add_constant(EnumConstantElement.builder("A").set_tag(2).build())
        )
        with pytest.raises(ProtoValidationError, match="Duplicate name 'A'"):
            builder.build()

    def test_enum_constant_tag_validated(self):
        with pytest.raises(ProtoValidationError, match="Invalid tag 0"):
            EnumConstantElement.builder("ZERO").set_tag(0).build()

    def test_enum_constant_missing_tag(self):
        with pytest.raises(ProtoValidationError):
            EnumConstantElement.builder("A").build()

    def test_extensions_single_value(self):
        extensions = ExtensionsElement.builder(100).build()
        assert (extensions.start, extensions.end) == (100, 100)

    def test_extensions_invalid_range(self):
        with pytest.raises(ProtoValidationError):
            ExtensionsElement.builder(200).set_end(100).build()
        with pytest.raises(ProtoValidationError):
            ExtensionsElement.builder(0).build()

    def test_reserved_requires_values(self):
        with pytest.raises(ProtoValidationError):
            ReservedElement.builder().build()

    def test_rpc_requires_types(self):
        with pytest.raises(ProtoValidationError):
            RpcElement.builder("Call").set_request_type("Request").build()

    def test_service_duplicate_rpcs(self):
        rpc = RpcElement.builder("Call").set_request_type("A").set_response_type("B").build()
        builder = ServiceElement.builder("Service").add_rpc(rpc).add_rpc(rpc)
        with pytest.raises(ProtoValidationError, match="Duplicate name 'Call'"):
            builder.build()

    def test_extend_qualified_name_drops_leading_dot(self):
        extend = ExtendElement.builder(".google.protobuf.FieldOptions").build()
        assert extend.qualified_name == "google.protobuf.FieldOptions"


class TestOptions:
    def test_create_infers_kinds(self):
        assert OptionElement.create("a", "text").value.kind == OptionKind.STRING
        assert OptionElement.create("a", True).value.kind == OptionKind.BOOLEAN
        assert OptionElement.create("a", 5).value == OptionValue(OptionKind.NUMBER, "5")
        assert OptionElement.create("a", 1.5).value == OptionValue(OptionKind.NUMBER, "1.5")
        listed = OptionElement.create("a", [1, "x"]).value
        assert listed.kind == OptionKind.LIST
        assert listed.value == (OptionValue.number(1), OptionValue.string("x"))

    def test_create_map(self):
        value = OptionElement.create("a", {"b": 1, "c": {"d": False}}).value
        assert value.kind == OptionKind.MAP
        assert [entry.name for entry in value.value] == ["b", "c"]
        assert value.value[1].value.kind == OptionKind.MAP

    def test_map_extension_entry(self):
        value = OptionValue.of({"[my.ext]": 1})
        assert value.value == (OptionElement("[my.ext]", OptionValue.number(1)),)
        assert value.to_schema() == "{ [my.ext]: 1 }"

    def test_map_rejects_parenthesized_entry(self):
        with pytest.raises(ProtoValidationError, match="OptionKind.MAP"):
            OptionValue.of({"(b.c)": 1})
        with pytest.raises(ProtoValidationError):
            OptionElement.create("x", {"(b.c)": 1})
        with pytest.raises(ProtoValidationError):
            OptionElement.create("x", {"a.b": 1})

    def test_parenthesized_name(self):
        option = OptionElement.create("my.ext", "v", is_parenthesized=True)
        assert option.name == "(my.ext)"
        assert option.is_parenthesized
        assert not OptionElement.create("plain", "v").is_parenthesized

    def test_builder(self):
        option = OptionElement.builder("custom").set_value(3).set_parenthesized(True).build()
        assert option == OptionElement.create("custom", 3, is_parenthesized=True)

    def test_builder_without_value(self):
        with pytest.raises(ProtoValidationError):
            OptionElement.builder("custom").build()

    def test_invalid_values(self):
        with pytest.raises(ProtoValidationError):
            OptionValue(OptionKind.NUMBER, "twelve")
        with pytest.raises(ProtoValidationError):
            OptionValue(OptionKind.ENUM, "not an ident")
        with pytest.raises(ProtoValidationError):
            OptionValue(OptionKind.BOOLEAN, "true")
        with pytest.raises(ProtoValidationError):
            OptionValue.of(object())

    def test_find_by_name(self):
        options = [OptionElement.create("a", 1), OptionElement.create("b", 2)]
        assert OptionElement.find_by_name(options, "b") is options[1]
        assert OptionElement.find_by_name(options, "c") is None


class TestProtoFileBuilder:
    def test_empty_file(self):
        proto_file = ProtoFile.builder("file.proto").build()
        assert proto_file.file_name == "file.proto"
        assert proto_file.syntax is None
        assert proto_file.package_name is None
        assert proto_file.types == ()

    def test_empty_file_name(self):
        with pytest.raises(ProtoValidationError):
            ProtoFile.builder("").build()

    def test_syntax_from_string(self):
        proto_file = ProtoFile.builder("file.proto").set_syntax("proto3").build()
        assert proto_file.syntax == ProtoSyntax.PROTO3

    def test_unknown_syntax(self):
        with pytest.raises(ProtoValidationError, match="Unknown syntax"):
            ProtoFile.builder("file.proto").set_syntax("proto4")

    def test_qualifies_names_with_package(self):
        inner_enum = EnumElement.builder("Kind").build()
        inner = MessageElement.builder("Inner").add_type(inner_enum).build()
        outer = MessageElement.builder("Outer").add_type(inner).build()
        service = ServiceElement.builder("Service").build()
        extend = ExtendElement.builder("Outer").build()
        proto_file = (
            ProtoFile.builder("file.proto")
            .set_package_name("example.simple")
            .add_type(outer)
            .add_service(service)
            .add_extend_declaration(extend)
            .build()
        )
        built_outer = proto_file.types[0]
        assert built_outer.qualified_name == "example.simple.Outer"
        assert built_outer.nested_types[0].qualified_name == "example.simple.Outer.Inner"
        assert (
            built_outer.nested_types[0].nested_types[0].qualified_name
            == "example.simple.Outer.Inner.Kind"
        )
        assert proto_file.services[0].qualified_name == "example.simple.Service"
        assert proto_file.extend_declarations[0].qualified_name == "example.simple.Outer"

    def test_duplicate_type_and_service(self):
        builder = (
            ProtoFile.builder("file.proto")
            .add_type(MessageElement.builder("Thing").build())
            .add_service(ServiceElement.builder("Thing").build())
        )
        with pytest.raises(ProtoValidationError):
            builder.build()

    def test_validation_error_is_parse_error(self):
        assert issubclass(ProtoValidationError, ProtoParseError)
