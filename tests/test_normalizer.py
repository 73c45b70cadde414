import unittest

import logsafe


STRING = logsafe.TypeDescriptor("java.lang.String", package="java.lang")
CUSTOMER = logsafe.TypeDescriptor("com.acme.Customer", package="com.acme")


def ternary(text, then_expression, else_expression):
    return logsafe.ConditionalExpression(
        text, None, then_expression=then_expression, else_expression=else_expression
    )


class NormalizerTests(unittest.TestCase):
    def test_plain_arguments_pass_through(self) -> None:
        arguments = [
            logsafe.LiteralExpression('"msg"', STRING),
            logsafe.NameExpression("customer", CUSTOMER),
        ]
        self.assertEqual(logsafe.normalize_arguments(arguments), arguments)

    def test_syntax_fragments_are_dropped(self) -> None:
        name = logsafe.NameExpression("customer", CUSTOMER)
        arguments = [logsafe.SyntaxFragment("/* note */"), name, logsafe.SyntaxFragment("???")]
        self.assertEqual(logsafe.normalize_arguments(arguments), [name])

    def test_conditional_expands_in_place(self) -> None:
        first = logsafe.LiteralExpression('"a"', STRING)
        left = logsafe.NameExpression("x", STRING)
        right = logsafe.NameExpression("y", CUSTOMER)
        last = logsafe.LiteralExpression("1", None, literal_kind="number")
        arguments = [first, ternary("c ? x : y", left, right), last]
        self.assertEqual(logsafe.normalize_arguments(arguments), [first, left, right, last])

    def test_nested_conditionals_flatten_to_leaves(self) -> None:
        a = logsafe.NameExpression("a", STRING)
        b = logsafe.NameExpression("b", STRING)
        c = logsafe.NameExpression("c", CUSTOMER)
        d = logsafe.NameExpression("d", CUSTOMER)
        nested = ternary("p ? (q ? a : b) : r ? c : d", ternary("q ? a : b", a, b), ternary("r ? c : d", c, d))
        self.assertEqual(logsafe.expand_conditional(nested), [a, b, c, d])

    def test_parenthesized_conditional_is_not_expanded(self) -> None:
        wrapped = logsafe.OtherExpression("(c ? x : y)", STRING)
        self.assertEqual(logsafe.normalize_arguments([wrapped]), [wrapped])


if __name__ == "__main__":
    unittest.main()
