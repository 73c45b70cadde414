import unittest

import logsafe


class TypeTextTests(unittest.TestCase):
    def test_nested_generics_wildcards_and_arrays(self) -> None:
        ref = logsafe.parse_type_text("Map<String, List<? extends Number>>[]")
        self.assertEqual(ref.name, "Map")
        self.assertEqual(ref.dimensions, 1)
        string, inner = ref.arguments
        self.assertEqual(string.name, "String")
        self.assertEqual(inner.name, "List")
        wildcard = inner.arguments[0]
        self.assertEqual((wildcard.name, wildcard.bound), ("?", "extends"))
        self.assertEqual(wildcard.arguments[0].name, "Number")

    def test_annotations_varargs_and_spacing(self) -> None:
        self.assertEqual(logsafe.parse_type_text("@NonNull String").name, "String")
        self.assertEqual(logsafe.parse_type_text("int...").dimensions, 1)
        self.assertEqual(logsafe.parse_type_text("java.util . Map.Entry").name, "java.util.Map.Entry")
        self.assertEqual(logsafe.parse_type_text("byte[] []").dimensions, 2)

    def test_diamond_has_no_arguments(self) -> None:
        self.assertEqual(logsafe.parse_type_text("ArrayList<>").arguments, ())

    def test_malformed_text(self) -> None:
        self.assertIsNone(logsafe.parse_type_text(""))
        self.assertIsNone(logsafe.parse_type_text("List<String"))
        self.assertIsNone(logsafe.parse_type_text("a + b"))


class RegistryDescriptorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = logsafe.TypeRegistry()
        self.ancestry = logsafe.AncestryResolver()

    def test_object_is_root(self) -> None:
        obj = self.registry.resolve("java.lang.Object")
        self.assertTrue(obj.is_root)
        self.assertEqual(obj.package, "java.lang")

    def test_interfaces_have_no_superclass(self) -> None:
        self.assertIsNone(self.registry.resolve("java.util.List").superclass)

    def test_number_subclass(self) -> None:
        integer = self.registry.resolve("java.lang.Integer")
        self.assertEqual(integer.superclass.qualified_name, "java.lang.Number")

    def test_generic_arguments_flow_to_supertypes(self) -> None:
        array_list = self.registry.resolve("java.util.ArrayList<java.lang.String>")
        self.assertEqual(array_list.kind, "parameterized")
        self.assertEqual(array_list.qualified_name, "java.util.ArrayList<java.lang.String>")
        collection = self.ancestry.find_ancestor(array_list, "java.util.Collection")
        self.assertEqual(collection.qualified_name, "java.util.Collection<java.lang.String>")

    def test_raw_type_has_raw_supertypes(self) -> None:
        array_list = self.registry.resolve("java.util.ArrayList")
        self.assertEqual(array_list.kind, "class")
        collection = self.ancestry.find_ancestor(array_list, "java.util.Collection")
        self.assertEqual(collection.type_arguments, ())

    def test_descriptors_are_memoized(self) -> None:
        self.assertIs(self.registry.resolve("java.lang.Integer"), self.registry.resolve("java.lang.Integer"))

    def test_enum_and_record_defaults(self) -> None:
        self.registry.declare(logsafe.TypeDeclaration("com.acme.Color", kind="enum"))
        self.registry.declare(logsafe.TypeDeclaration("com.acme.Point", kind="record"))
        color = self.registry.resolve("com.acme.Color")
        self.assertEqual(color.kind, "enum")
        self.assertEqual(color.superclass.qualified_name, "java.lang.Enum<com.acme.Color>")
        point = self.registry.resolve("com.acme.Point")
        self.assertEqual(point.kind, "class")
        self.assertEqual(point.superclass.qualified_name, "java.lang.Record")

    def test_unknown_qualified_name_is_opaque(self) -> None:
        thing = self.registry.resolve("com.vendor.Thing")
        self.assertEqual(thing.qualified_name, "com.vendor.Thing")
        self.assertEqual(thing.package, "com.vendor")
        self.assertTrue(thing.is_root)

    def test_unknown_simple_name_is_unresolved(self) -> None:
        self.assertIsNone(self.registry.resolve("Thing"))

    def test_primitives_and_arrays(self) -> None:
        self.assertEqual(self.registry.resolve("int").kind, "primitive")
        array = self.registry.resolve("String[]")
        self.assertEqual(array.kind, "array")
        self.assertEqual(array.qualified_name, "java.lang.String[]")
        self.assertEqual(array.component.qualified_name, "java.lang.String")


class RegistryScopeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = logsafe.TypeRegistry()
        self.scope = logsafe._NameScope(
            imports=logsafe.ImportContext(
                package="com.acme",
                single={"Widget": "com.vendor.Widget"},
                on_demand=["java.util.concurrent"],
            ),
        )

    def test_single_import(self) -> None:
        self.assertEqual(self.registry.resolve("Widget", self.scope).qualified_name, "com.vendor.Widget")

    def test_on_demand_import(self) -> None:
        resolved = self.registry.resolve("ConcurrentHashMap<String, Integer>", self.scope)
        self.assertEqual(
            resolved.qualified_name,
            "java.util.concurrent.ConcurrentHashMap<java.lang.String,java.lang.Integer>",
        )

    def test_same_package_declaration(self) -> None:
        self.registry.declare(logsafe.TypeDeclaration("com.acme.Order"))
        self.assertEqual(self.registry.resolve("Order", self.scope).qualified_name, "com.acme.Order")

    def test_type_variables(self) -> None:
        scope = logsafe._NameScope(type_variables={"T": None})
        resolved = self.registry.resolve("java.util.List<T>", scope)
        self.assertEqual(resolved.qualified_name, "java.util.List<T>")
        self.assertEqual(resolved.type_arguments[0].kind, "type_variable")


class RegistryMemberTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = logsafe.TypeRegistry()

    def test_inherited_generic_method(self) -> None:
        hash_map = self.registry.resolve("java.util.HashMap<java.lang.String,java.lang.Integer>")
        binding = self.registry.find_method(hash_map, "get")
        self.assertEqual(binding.return_type.qualified_name, "java.lang.Integer")
        self.assertEqual(binding.declaring_type.qualified_name, "java.util.Map<java.lang.String,java.lang.Integer>")

    def test_class_chain_before_interfaces(self) -> None:
        array_list = self.registry.resolve("java.util.ArrayList<java.lang.String>")
        binding = self.registry.find_method(array_list, "toString")
        self.assertEqual(binding.declaring_type.erasure, "java.util.AbstractCollection")

    def test_object_methods_reach_interfaces(self) -> None:
        binding = self.registry.find_method(self.registry.resolve("java.util.List"), "hashCode")
        self.assertEqual(binding.declaring_type.qualified_name, "java.lang.Object")

    def test_logger_methods(self) -> None:
        binding = self.registry.find_method(self.registry.resolve("org.slf4j.Logger"), "info")
        self.assertEqual(binding.declaring_type.qualified_name, "org.slf4j.Logger")
        self.assertEqual(binding.return_type.qualified_name, "void")

    def test_missing_method(self) -> None:
        self.assertIsNone(self.registry.find_method(self.registry.resolve("java.lang.String"), "frobnicate"))

    def test_fields_and_array_length(self) -> None:
        found, type_ = self.registry.find_field(self.registry.resolve("java.lang.Boolean"), "TRUE")
        self.assertTrue(found)
        self.assertEqual(type_.qualified_name, "java.lang.Boolean")
        found, type_ = self.registry.find_field(self.registry.resolve("int[]"), "length")
        self.assertEqual(type_.qualified_name, "int")

    def test_later_declarations_win(self) -> None:
        registry = logsafe.TypeRegistry([
            logsafe.TypeDeclaration("com.acme.Money", superclass="java.lang.Number"),
        ])
        money = registry.resolve("com.acme.Money")
        self.assertEqual(money.superclass.qualified_name, "java.lang.Number")
        registry.declare(logsafe.TypeDeclaration("com.acme.Money", superclass="java.lang.Object"))
        self.assertEqual(registry.resolve("com.acme.Money").superclass.qualified_name, "java.lang.Object")


if __name__ == "__main__":
    unittest.main()
