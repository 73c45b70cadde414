import unittest

import logsafe


OBJECT = logsafe.TypeDescriptor("java.lang.Object", package="java.lang")
STRING = logsafe.TypeDescriptor("java.lang.String", package="java.lang", superclass=OBJECT)
LOGGER = logsafe.TypeDescriptor("org.slf4j.Logger", kind="interface", package="org.slf4j")
CUSTOMER = logsafe.TypeDescriptor("com.acme.Customer", package="com.acme", superclass=OBJECT)
STATUS = logsafe.TypeDescriptor("com.acme.Status", kind="enum", package="com.acme", superclass=OBJECT)
VOID = logsafe.primitive_type("void")


def list_of(element):
    suffix = f"<{element.qualified_name}>"
    collection = logsafe.TypeDescriptor(
        f"java.util.Collection{suffix}", kind="parameterized", package="java.util",
        interfaces=(logsafe.TypeDescriptor(f"java.lang.Iterable{suffix}", kind="parameterized"),),
        type_arguments=(element,),
    )
    return logsafe.TypeDescriptor(
        f"java.util.List{suffix}", kind="parameterized", package="java.util",
        interfaces=(collection,), type_arguments=(element,),
    )


def log_binding(level, declaring_type=LOGGER):
    return logsafe.MethodBinding(name=level, declaring_type=declaring_type, return_type=VOID)


def string_literal(text='"msg"'):
    return logsafe.LiteralExpression(text, STRING, literal_kind="string")


def make_unit(calls, path="/src/com/acme/A.java"):
    """
    Build a compilation unit with one statement per entry of ``calls``:
    (call text, binding, arguments). The first statement is on line 3.
    """
    lines = ["class A {", "  void f() {"]
    lines.extend(f"    {text};" for text, _, _ in calls)
    lines.extend(["  }", "}", ""])
    source = "\n".join(lines)

    unit = logsafe.CompilationUnit(path=path, source=source)
    position = 0
    for text, binding, arguments in calls:
        start = source.index(text, position)
        position = start + len(text)
        unit.invocations.append(
            logsafe.InvocationNode(
                start=start,
                length=len(text),
                name=text.split("(", 1)[0].rsplit(".", 1)[-1],
                binding=binding,
                arguments=list(arguments),
            )
        )
    return unit


def run(*units, policy=None):
    return logsafe.analyze_units(units, policy).violations


class ScenarioTests(unittest.TestCase):
    def test_literals_and_primitives_produce_nothing(self) -> None:
        unit = make_unit([(
            'log.info("msg", 42, true)',
            log_binding("info"),
            [
                string_literal(),
                logsafe.LiteralExpression("42", logsafe.primitive_type("int"), literal_kind="number"),
                logsafe.LiteralExpression("true", logsafe.primitive_type("boolean"), literal_kind="boolean"),
            ],
        )])
        self.assertEqual(run(unit), [])

    def test_custom_object_is_reported(self) -> None:
        unit = make_unit([(
            'log.warn("msg", customer)',
            log_binding("warn"),
            [string_literal(), logsafe.NameExpression("customer", CUSTOMER)],
        )])
        violations = run(unit)
        self.assertEqual(len(violations), 1)
        violation = violations[0]
        self.assertEqual(violation.id, 1)
        self.assertEqual(violation.call_site.line, 3)
        self.assertEqual(violation.call_site.level, "warn")
        self.assertEqual(violation.call_site.path, "/src/com/acme/A.java")
        self.assertEqual([r.render() for r in violation.rejected], ["customer<com.acme.Customer>"])

    def test_only_the_rejected_ternary_branch_is_reported(self) -> None:
        safe = logsafe.NameExpression("status", STATUS)
        unsafe = logsafe.NameExpression("customer", CUSTOMER)
        unit = make_unit([(
            'log.error("msg", cond ? status : customer)',
            log_binding("error"),
            [
                string_literal(),
                logsafe.ConditionalExpression("cond ? status : customer", None, safe, unsafe),
            ],
        )])
        violations = run(unit)
        self.assertEqual(len(violations), 1)
        self.assertEqual([r.expression for r in violations[0].rejected], [unsafe])

    def test_collection_element_types(self) -> None:
        unit = make_unit([
            ('log.info("msg", list)', log_binding("info"),
             [string_literal(), logsafe.NameExpression("list", list_of(STRING))]),
            ('log.info("msg", list2)', log_binding("info"),
             [string_literal(), logsafe.NameExpression("list2", list_of(CUSTOMER))]),
        ])
        violations = run(unit)
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0].call_site.line, 4)
        self.assertEqual(violations[0].rejected[0].render(), "list2<java.util.List<com.acme.Customer>>")

    def test_unsafe_to_string_is_reported(self) -> None:
        to_string = logsafe.MethodCallExpression(
            "obj.toString()", STRING, method_name="toString", declaring_type=CUSTOMER
        )
        unit = make_unit([('log.info("msg", obj.toString())', log_binding("info"), [string_literal(), to_string])])
        violations = run(unit)
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0].rejected[0].render(), "obj.toString()<java.lang.String>")


class CallSiteSelectionTests(unittest.TestCase):
    def test_unbound_invocation_is_skipped(self) -> None:
        unit = make_unit([('log.info("msg", customer)', None, [logsafe.NameExpression("customer", CUSTOMER)])])
        self.assertEqual(run(unit), [])

    def test_other_levels_and_loggers_are_skipped(self) -> None:
        other_logger = logsafe.TypeDescriptor("java.util.logging.Logger", package="java.util.logging")
        customer = logsafe.NameExpression("customer", CUSTOMER)
        unit = make_unit([
            ('log.debug("msg", customer)', log_binding("debug"), [customer]),
            ('log.trace("msg", customer)', log_binding("trace"), [customer]),
            ('jul.info("msg", customer)', log_binding("info", other_logger), [customer]),
        ])
        self.assertEqual(run(unit), [])

    def test_method_name_matches_case_insensitively(self) -> None:
        unit = make_unit([(
            'log.INFO("msg", customer)',
            log_binding("INFO"),
            [logsafe.NameExpression("customer", CUSTOMER)],
        )])
        violations = run(unit)
        self.assertEqual(len(violations), 1)
        self.assertEqual(violations[0].call_site.level, "info")

    def test_logger_methods_come_from_the_policy(self) -> None:
        unit = make_unit([('log.debug("msg", customer)', log_binding("debug"),
                           [logsafe.NameExpression("customer", CUSTOMER)])])
        policy = logsafe.Policy(logger_methods=("debug",))
        self.assertEqual(len(run(unit, policy=policy)), 1)


class ViolationShapeTests(unittest.TestCase):
    def test_statement_includes_one_trailing_character(self) -> None:
        unit = make_unit([('log.info("msg", customer)', log_binding("info"),
                           [logsafe.NameExpression("customer", CUSTOMER)])])
        self.assertEqual(run(unit)[0].call_site.statement, 'log.info("msg", customer);')

    def test_unresolved_argument_is_rendered_as_such(self) -> None:
        unit = make_unit([('log.info("msg", mystery)', log_binding("info"),
                           [logsafe.NameExpression("mystery", None)])])
        rejected = run(unit)[0].rejected[0]
        self.assertIsNone(rejected.type)
        self.assertEqual(rejected.render(), "mystery<unresolved>")

    def test_rejected_arguments_keep_source_order(self) -> None:
        first = logsafe.NameExpression("first", CUSTOMER)
        second = logsafe.NameExpression("second", None)
        unit = make_unit([('log.info("{} {}", first, second)', log_binding("info"),
                           [string_literal('"{} {}"'), first, second])])
        self.assertEqual([r.text for r in run(unit)[0].rejected], ["first", "second"])

    def test_syntax_fragments_never_become_violations(self) -> None:
        unit = make_unit([('log.info("msg" /* x */)', log_binding("info"),
                           [string_literal(), logsafe.SyntaxFragment("/* x */")])])
        self.assertEqual(run(unit), [])


class SequenceTests(unittest.TestCase):
    def build_units(self):
        customer = logsafe.NameExpression("customer", CUSTOMER)
        first = make_unit([
            ('log.info("a", customer)', log_binding("info"), [customer]),
            ('log.warn("b", customer)', log_binding("warn"), [customer]),
        ], path="/src/A.java")
        second = make_unit([('log.error("c", customer)', log_binding("error"), [customer])], path="/src/B.java")
        return first, second

    def test_ids_run_across_units(self) -> None:
        violations = run(*self.build_units())
        self.assertEqual([v.id for v in violations], [1, 2, 3])
        self.assertEqual([v.call_site.path for v in violations], ["/src/A.java", "/src/A.java", "/src/B.java"])

    def test_reporter_sees_every_violation_in_order(self) -> None:
        seen = []
        logsafe.analyze_units(self.build_units(), reporter=seen.append)
        self.assertEqual([v.id for v in seen], [1, 2, 3])

    def test_rerunning_is_idempotent(self) -> None:
        units = self.build_units()
        self.assertEqual(run(*units), run(*units))

    def test_injected_sequence(self) -> None:
        sequence = logsafe.ViolationSequence(start=10)
        visitor = logsafe.LogCallVisitor(logsafe.Classifier(), sequence)
        first, second = self.build_units()
        visitor.visit(first)
        violations = visitor.visit(second)
        self.assertEqual([v.id for v in violations], [12])
        self.assertEqual(sequence.issued, 3)


if __name__ == "__main__":
    unittest.main()
