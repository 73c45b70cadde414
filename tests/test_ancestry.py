import unittest

import logsafe


OBJECT = logsafe.TypeDescriptor("java.lang.Object", package="java.lang")
SERIALIZABLE = logsafe.TypeDescriptor("java.io.Serializable", kind="interface", package="java.io")


def build_number_hierarchy():
    number = logsafe.TypeDescriptor(
        "java.lang.Number",
        package="java.lang",
        superclass=OBJECT,
        interfaces=(SERIALIZABLE,),
    )
    comparable = logsafe.TypeDescriptor(
        "java.lang.Comparable<java.lang.Integer>",
        kind="parameterized",
        package="java.lang",
    )
    integer = logsafe.TypeDescriptor(
        "java.lang.Integer",
        package="java.lang",
        superclass=number,
        interfaces=(comparable,),
    )
    return number, integer


def build_list_hierarchy(element):
    iterable = logsafe.TypeDescriptor(
        f"java.lang.Iterable<{element.qualified_name}>",
        kind="parameterized",
        package="java.lang",
        type_arguments=(element,),
    )
    collection = logsafe.TypeDescriptor(
        f"java.util.Collection<{element.qualified_name}>",
        kind="parameterized",
        package="java.util",
        interfaces=(iterable,),
        type_arguments=(element,),
    )
    list_ = logsafe.TypeDescriptor(
        f"java.util.List<{element.qualified_name}>",
        kind="parameterized",
        package="java.util",
        interfaces=(collection,),
        type_arguments=(element,),
    )
    array_list = logsafe.TypeDescriptor(
        f"java.util.ArrayList<{element.qualified_name}>",
        kind="parameterized",
        package="java.util",
        superclass=OBJECT,
        interfaces=(list_, collection),
        type_arguments=(element,),
    )
    return collection, list_, array_list


class ClosureTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = logsafe.AncestryResolver()

    def test_root_type_has_empty_closure(self) -> None:
        self.assertEqual(self.resolver.closure(OBJECT), ())
        self.assertEqual(self.resolver.closure(SERIALIZABLE), ())

    def test_roots_reached_from_a_subtype_are_left_out(self) -> None:
        number, integer = build_number_hierarchy()
        self.assertEqual(self.resolver.closure(integer), (integer, number))

    def test_non_root_interfaces_are_followed(self) -> None:
        string = logsafe.TypeDescriptor("java.lang.String", package="java.lang", superclass=OBJECT)
        collection, list_, _ = build_list_hierarchy(string)
        closure = self.resolver.closure(list_)
        self.assertEqual(closure[0], list_)
        self.assertIn(collection, closure)
        self.assertNotIn(OBJECT, closure)

    def test_shared_ancestors_appear_once(self) -> None:
        string = logsafe.TypeDescriptor("java.lang.String", package="java.lang", superclass=OBJECT)
        collection, _, array_list = build_list_hierarchy(string)
        closure = self.resolver.closure(array_list)
        self.assertEqual(sum(1 for member in closure if member == collection), 1)

    def test_closure_is_cached_per_descriptor(self) -> None:
        _, integer = build_number_hierarchy()
        first = self.resolver.closure(integer)
        self.assertIs(self.resolver.closure(integer), first)


class FindAncestorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.resolver = logsafe.AncestryResolver()

    def test_matches_on_erased_name(self) -> None:
        string = logsafe.TypeDescriptor("java.lang.String", package="java.lang", superclass=OBJECT)
        collection, _, array_list = build_list_hierarchy(string)
        found = self.resolver.find_ancestor(array_list, "java.util.Collection")
        self.assertEqual(found, collection)
        self.assertEqual(found.type_arguments, (string,))

    def test_comparison_is_case_sensitive(self) -> None:
        string = logsafe.TypeDescriptor("java.lang.String", package="java.lang", superclass=OBJECT)
        _, _, array_list = build_list_hierarchy(string)
        self.assertIsNone(self.resolver.find_ancestor(array_list, "java.util.collection"))

    def test_root_type_never_finds_itself(self) -> None:
        self.assertIsNone(self.resolver.find_ancestor(OBJECT, "java.lang.Object"))

    def test_missing_ancestor(self) -> None:
        _, integer = build_number_hierarchy()
        self.assertIsNone(self.resolver.find_ancestor(integer, "java.lang.Throwable"))


if __name__ == "__main__":
    unittest.main()
