#!/usr/bin/env python3
"""
Logsafe - argument safety checks for slf4j logging calls in Java sources

High-level goals:
- Parse Java sources (via tree-sitter) into a typed view of every method invocation
- Locate slf4j Logger error/warn/info call sites
- Classify every logged argument against a whitelist policy (overridable from YAML)
- Report call sites with rejected arguments as tables or JSON for CI

An argument is unsafe to hand to a logging API when its string conversion
may leak data the author did not mean to log. Raw collections pass, and the
Number rule looks at the direct superclass only.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    IO,
    Iterable,
    Iterator,
    List,
    Literal,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)
import argparse
import bisect
import json
import os
import re
import sys

import yaml
import tree_sitter_java as tsjava
from tree_sitter import Language, Node, Parser
from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

__version__ = "0.1.0"

JAVA_LANGUAGE = Language(tsjava.language())

UNRESOLVED = "unresolved"


class LogsafeError(Exception):
    """Base class for errors that abort an analysis run."""


class PolicyError(LogsafeError):
    """Raised when a policy file cannot be read or has the wrong shape."""


class SourceReadError(LogsafeError):
    """Raised when a source file or source root cannot be read."""


# ============================================================
# ===================== TYPE DESCRIPTORS =====================
# ============================================================

TypeKind = Literal[
    "primitive",
    "enum",
    "class",
    "interface",
    "parameterized",
    "array",
    "wildcard",
    "type_variable",
    "null",
]

PRIMITIVE_NAMES = ("boolean", "byte", "char", "short", "int", "long", "float", "double", "void")


@dataclass(frozen=True)
class TypeDescriptor:
    """
    A resolved static type.

    Identity is (qualified_name, kind, type_arguments); the ancestry references
    are carried along but never compared, so two descriptors for the same
    parameterized type are equal regardless of how their supertypes were built.
    Parameterized names follow the host compiler's rendering, e.g.
    ``java.util.List<java.lang.String>``.
    """
    qualified_name: str
    kind: TypeKind = "class"
    package: str = ""
    superclass: Optional["TypeDescriptor"] = field(default=None, compare=False, repr=False)
    interfaces: Tuple["TypeDescriptor", ...] = field(default=(), compare=False, repr=False)
    type_arguments: Tuple["TypeDescriptor", ...] = ()
    component: Optional["TypeDescriptor"] = field(default=None, compare=False, repr=False)  # arrays only

    @property
    def erasure(self) -> str:
        return self.qualified_name.split("<", 1)[0]

    @property
    def is_root(self) -> bool:
        return self.superclass is None and not self.interfaces

    @property
    def simple_name(self) -> str:
        return self.erasure.rsplit(".", 1)[-1]


_PRIMITIVES: Dict[str, TypeDescriptor] = {
    name: TypeDescriptor(name, kind="primitive") for name in PRIMITIVE_NAMES
}

NULL_TYPE = TypeDescriptor("null", kind="null")


def primitive_type(name: str) -> TypeDescriptor:
    return _PRIMITIVES[name]


def array_type(component: TypeDescriptor) -> TypeDescriptor:
    return TypeDescriptor(f"{component.qualified_name}[]", kind="array", component=component)


def _package_of(qualified_name: str) -> str:
    """
    Best guess at the package of a dotted name: the leading lower-case
    segments, so ``java.util.Map.Entry`` lives in ``java.util``.
    """
    parts = qualified_name.split("<", 1)[0].split(".")
    package_parts: List[str] = []
    for part in parts[:-1]:
        if part[:1].isupper():
            break
        package_parts.append(part)
    return ".".join(package_parts)


def _parameterized_name(qualified_name: str, arguments: Sequence[TypeDescriptor]) -> str:
    if not arguments:
        return qualified_name
    return f"{qualified_name}<{','.join(arg.qualified_name for arg in arguments)}>"


# ============================================================
# ==================== EXPRESSIONS ===========================
# ============================================================

@dataclass(frozen=True)
class Expression:
    """
    A logged argument. ``type`` is the statically resolved type, or None when
    the binding oracle could not resolve it.
    """
    text: str
    type: Optional[TypeDescriptor] = None


@dataclass(frozen=True)
class LiteralExpression(Expression):
    literal_kind: Literal["string", "number", "boolean"] = "string"


@dataclass(frozen=True)
class MethodCallExpression(Expression):
    """``type`` is the call's result type."""
    method_name: str = ""
    declaring_type: Optional[TypeDescriptor] = None


@dataclass(frozen=True)
class NameExpression(Expression):
    """A variable, parameter or field reference (simple or qualified)."""


@dataclass(frozen=True)
class ConditionalExpression(Expression):
    then_expression: Optional[Expression] = None
    else_expression: Optional[Expression] = None


@dataclass(frozen=True)
class OtherExpression(Expression):
    pass


@dataclass(frozen=True)
class SyntaxFragment:
    """Non-expression syntax found in an argument list (comments, recovered errors)."""
    text: str


RawArgument = Union[Expression, SyntaxFragment]


# ============================================================
# ================== TYPED COMPILATION UNITS =================
# ============================================================

@dataclass(frozen=True)
class MethodBinding:
    name: str
    declaring_type: TypeDescriptor
    return_type: Optional[TypeDescriptor] = None


@dataclass
class InvocationNode:
    """
    One method invocation as seen by the binding oracle. Offsets are character
    offsets into the compilation unit's source.
    """
    start: int
    length: int
    name: str
    binding: Optional[MethodBinding] = None
    arguments: List[RawArgument] = field(default_factory=list)


@dataclass
class CompilationUnit:
    """
    A parsed and bound source file. ``invocations`` are in end-of-node order:
    an invocation nested in another one's arguments precedes it.
    """
    path: str
    source: str
    invocations: List[InvocationNode] = field(default_factory=list)
    has_syntax_errors: bool = False
    _line_starts: Optional[List[int]] = field(default=None, init=False, repr=False, compare=False)

    def line_number(self, offset: int) -> int:
        """1-based line containing the character at ``offset``."""
        if self._line_starts is None:
            starts = [0]
            for index, char in enumerate(self.source):
                if char == "\n":
                    starts.append(index + 1)
            self._line_starts = starts
        return bisect.bisect_right(self._line_starts, offset)


# ============================================================
# ================ CALL SITES & VIOLATIONS ===================
# ============================================================

@dataclass(frozen=True)
class LogCallSite:
    path: str
    line: int
    statement: str
    level: str
    arguments: Tuple[RawArgument, ...] = ()


@dataclass(frozen=True)
class RejectedArgument:
    expression: Expression
    type: Optional[TypeDescriptor]
    text: str

    @property
    def type_name(self) -> str:
        return self.type.qualified_name if self.type is not None else UNRESOLVED

    def render(self) -> str:
        return f"{self.text}<{self.type_name}>"


@dataclass(frozen=True)
class Violation:
    id: int
    call_site: LogCallSite
    rejected: Tuple[RejectedArgument, ...]


# ============================================================
# ==================== TYPE ANCESTRY =========================
# ============================================================

class AncestryResolver:
    """
    Transitive superclass/interface closure, cached per run.

    A root type (no superclass and no interfaces) contributes nothing: the
    closure of java.lang.Object is empty, and a root reached while walking
    up from another type is left out, while every non-root type on the way,
    starting with the queried one, is included. Collection and throwable
    lookups depend on exactly this shape.
    """

    def __init__(self) -> None:
        # keyed by identity: a cycle-cut shallow descriptor compares equal to
        # the full one but has no ancestry of its own
        self._cache: Dict[int, Tuple[TypeDescriptor, Tuple[TypeDescriptor, ...]]] = {}

    def closure(self, type_: TypeDescriptor) -> Tuple[TypeDescriptor, ...]:
        cached = self._cache.get(id(type_))
        if cached is not None:
            return cached[1]

        supertypes: List[TypeDescriptor] = []
        if type_.superclass is not None:
            supertypes.append(type_.superclass)
        supertypes.extend(type_.interfaces)

        if not supertypes:
            result: Tuple[TypeDescriptor, ...] = ()
        else:
            members: List[TypeDescriptor] = [type_]
            for supertype in supertypes:
                members.extend(self.closure(supertype))
            result = tuple(_unique(members))

        self._cache[id(type_)] = (type_, result)
        return result

    def find_ancestor(self, type_: TypeDescriptor, qualified_name: str) -> Optional[TypeDescriptor]:
        """First closure member whose erased name is exactly ``qualified_name``."""
        for member in self.closure(type_):
            if member.erasure == qualified_name:
                return member
        return None


def _unique(types: Iterable[TypeDescriptor]) -> Iterator[TypeDescriptor]:
    seen: Set[TypeDescriptor] = set()
    for type_ in types:
        if type_ in seen:
            continue
        seen.add(type_)
        yield type_


# ============================================================
# ======================== POLICY ============================
# ============================================================

@dataclass
class Policy:
    """
    The whitelist applied to logged arguments. Defaults are the reviewed
    slf4j policy; a YAML policy file may override any of them.
    """
    logger_type: str = "org.slf4j.Logger"
    logger_methods: Tuple[str, ...] = ("error", "warn", "info")
    marker_type: str = "org.slf4j.Marker"
    allowed_packages: Tuple[str, ...] = ("java.time",)
    allowed_superclasses: Tuple[str, ...] = ("java.lang.Number",)
    allowed_language_classes: Tuple[str, ...] = (
        "java.lang.Character",
        "java.lang.String",
        "java.lang.Boolean",
        "java.lang.Class",
    )
    allowed_parameterized_classes: Tuple[str, ...] = ("java.lang.Class",)
    allowed_utility_classes: Tuple[str, ...] = (
        "java.util.UUID",
        "java.util.Currency",
        "java.util.Locale",
        "java.util.Date",
        "net.logstash.logback.marker.LogstashMarker",
    )
    collection_type: str = "java.util.Collection"
    throwable_type: str = "java.lang.Throwable"
    types: List["TypeDeclaration"] = field(default_factory=list)


# ============================================================
# ===================== RULE ENGINE ==========================
# ============================================================

@dataclass(frozen=True)
class RuleContext:
    policy: Policy
    ancestry: AncestryResolver


TypePredicate = Callable[[TypeDescriptor, RuleContext], bool]
ExpressionPredicate = Callable[[Expression, RuleContext], bool]


def any_of(*predicates: Callable[[Any, RuleContext], bool]) -> Callable[[Any, RuleContext], bool]:
    def _any(subject: Any, context: RuleContext) -> bool:
        return any(predicate(subject, context) for predicate in predicates)

    _any.__name__ = "any_of(" + ", ".join(p.__name__ for p in predicates) + ")"
    return _any


def all_of(*predicates: Callable[[Any, RuleContext], bool]) -> Callable[[Any, RuleContext], bool]:
    def _all(subject: Any, context: RuleContext) -> bool:
        return all(predicate(subject, context) for predicate in predicates)

    _all.__name__ = "all_of(" + ", ".join(p.__name__ for p in predicates) + ")"
    return _all


def on_type(predicate: TypePredicate) -> ExpressionPredicate:
    """Lift a type predicate to expressions; unresolved expressions fail it."""
    def _typed(expression: Expression, context: RuleContext) -> bool:
        return expression.type is not None and predicate(expression.type, context)

    _typed.__name__ = predicate.__name__.replace("_type", "")
    return _typed


def _names_equal(left: str, right: str) -> bool:
    return left.lower() == right.lower()


def _name_in(type_: TypeDescriptor, names: Iterable[str]) -> bool:
    return any(_names_equal(type_.qualified_name, name) for name in names)


def is_log_marker_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    return _names_equal(type_.qualified_name, context.policy.marker_type)


def is_primitive_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    return type_.kind == "primitive"


def is_enum_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    return type_.kind == "enum"


def is_allowed_package_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    return bool(type_.package) and type_.package in context.policy.allowed_packages


def is_allowed_superclass_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    # one hop only: Integer passes through Number, a subclass of Integer would not
    superclass = type_.superclass
    return superclass is not None and _name_in(superclass, context.policy.allowed_superclasses)


def is_allowed_language_class_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    if _name_in(type_, context.policy.allowed_language_classes):
        return True
    return type_.kind == "parameterized" and any(
        _names_equal(type_.erasure, name) for name in context.policy.allowed_parameterized_classes
    )


def is_allowed_utility_class_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    return _name_in(type_, context.policy.allowed_utility_classes)


is_allowed_element_type = any_of(
    is_allowed_language_class_type,
    is_allowed_utility_class_type,
    is_allowed_superclass_type,
    is_enum_type,
)


def is_allowed_collection_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    collection = context.ancestry.find_ancestor(type_, context.policy.collection_type)
    if collection is None:
        return False
    # a raw collection has no type arguments and therefore passes
    return all(is_allowed_element_type(argument, context) for argument in collection.type_arguments)


def is_throwable_type(type_: TypeDescriptor, context: RuleContext) -> bool:
    throwable = context.policy.throwable_type
    if _names_equal(type_.qualified_name, throwable):
        return True
    return context.ancestry.find_ancestor(type_, throwable) is not None


def is_allowed_literal(expression: Expression, context: RuleContext) -> bool:
    return isinstance(expression, LiteralExpression)


def is_safe_to_string(expression: Expression, context: RuleContext) -> bool:
    """
    Explicit ``toString()`` calls are only safe when the method is declared by
    an allowed package or utility class. Anything else passes this check.
    """
    if not isinstance(expression, MethodCallExpression):
        return True
    if expression.method_name.lower() != "tostring":
        return True
    declaring_type = expression.declaring_type
    if declaring_type is None:
        return False
    return is_allowed_package_type(declaring_type, context) or is_allowed_utility_class_type(
        declaring_type, context
    )


is_log_marker = on_type(is_log_marker_type)
is_primitive = on_type(is_primitive_type)
is_enum = on_type(is_enum_type)
is_allowed_package = on_type(is_allowed_package_type)
is_allowed_superclass = on_type(is_allowed_superclass_type)
is_allowed_language_class = on_type(is_allowed_language_class_type)
is_allowed_utility_class = on_type(is_allowed_utility_class_type)
is_allowed_collection = on_type(is_allowed_collection_type)
is_throwable = on_type(is_throwable_type)

ALLOWED_TYPE_DECLARATION: ExpressionPredicate = any_of(
    is_log_marker,
    is_primitive,
    is_enum,
    is_allowed_literal,
    is_allowed_package,
    is_allowed_superclass,
    is_allowed_language_class,
    is_allowed_utility_class,
    is_allowed_collection,
    is_throwable,
)

ALLOWED_ARGUMENT: ExpressionPredicate = all_of(ALLOWED_TYPE_DECLARATION, is_safe_to_string)


class Classifier:
    """
    Decides, per normalized expression, whether it is allowed to be logged.
    """

    def __init__(
        self,
        policy: Optional[Policy] = None,
        ancestry: Optional[AncestryResolver] = None,
        rule: ExpressionPredicate = ALLOWED_ARGUMENT,
    ) -> None:
        self.policy = policy or Policy()
        self.context = RuleContext(self.policy, ancestry or AncestryResolver())
        self.rule = rule

    def is_allowed(self, expression: Expression) -> bool:
        return bool(self.rule(expression, self.context))

    def rejected(self, expressions: Iterable[Expression]) -> List[Expression]:
        return [expression for expression in expressions if not self.is_allowed(expression)]


# ============================================================
# ================= EXPRESSION NORMALIZER ====================
# ============================================================

def expand_conditional(expression: Expression) -> List[Expression]:
    """Flatten ``a ? b : c`` (nested to any depth) into its leaf branches."""
    if not isinstance(expression, ConditionalExpression):
        return [expression]
    branches: List[Expression] = []
    for branch in (expression.then_expression, expression.else_expression):
        if branch is not None:
            branches.extend(expand_conditional(branch))
    return branches


def normalize_arguments(raw_arguments: Iterable[RawArgument]) -> List[Expression]:
    normalized: List[Expression] = []
    for argument in raw_arguments:
        if not isinstance(argument, Expression):
            continue
        normalized.extend(expand_conditional(argument))
    return normalized


# ============================================================
# =================== CALL-SITE VISITOR ======================
# ============================================================

class ViolationSequence:
    """Run-scoped violation ids: 1, 2, 3, ... in emission order."""

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self.issued = 0

    def next_id(self) -> int:
        value = self._next
        self._next += 1
        self.issued += 1
        return value


class LogCallVisitor:
    """
    Walks the bound invocations of a compilation unit, picks out logger calls
    and turns those with rejected arguments into Violations.

    Invocations without a method binding are skipped.
    """

    def __init__(
        self,
        classifier: Classifier,
        sequence: Optional[ViolationSequence] = None,
        reporter: Optional[Callable[[Violation], None]] = None,
    ) -> None:
        self.classifier = classifier
        self.sequence = sequence or ViolationSequence()
        self.reporter = reporter

    def visit(self, unit: CompilationUnit) -> List[Violation]:
        violations: List[Violation] = []
        for node in unit.invocations:
            violation = self.end_visit(unit, node)
            if violation is None:
                continue
            violations.append(violation)
            if self.reporter is not None:
                self.reporter(violation)
        return violations

    def is_log_call(self, binding: MethodBinding) -> bool:
        policy = self.classifier.policy
        if not _names_equal(binding.declaring_type.qualified_name, policy.logger_type):
            return False
        return binding.name.lower() in {name.lower() for name in policy.logger_methods}

    def end_visit(self, unit: CompilationUnit, node: InvocationNode) -> Optional[Violation]:
        binding = node.binding
        if binding is None or not self.is_log_call(binding):
            return None

        rejected = self.classifier.rejected(normalize_arguments(node.arguments))
        if not rejected:
            return None

        # one character past the invocation, usually the closing ';'
        statement = unit.source[node.start:node.start + node.length + 1]
        call_site = LogCallSite(
            path=unit.path,
            line=unit.line_number(node.start),
            statement=statement,
            level=binding.name.lower(),
            arguments=tuple(node.arguments),
        )
        return Violation(
            id=self.sequence.next_id(),
            call_site=call_site,
            rejected=tuple(
                RejectedArgument(expression=expression, type=expression.type, text=expression.text)
                for expression in rejected
            ),
        )


# ============================================================
# ================== TYPE DECLARATIONS =======================
# ============================================================

DeclarationKind = Literal["class", "interface", "enum", "record"]

_DESCRIPTOR_KINDS: Dict[str, TypeKind] = {
    "class": "class",
    "record": "class",
    "interface": "interface",
    "enum": "enum",
}


@dataclass
class ImportContext:
    """Names visible in a source file: its package plus its imports."""
    package: str = ""
    single: Dict[str, str] = field(default_factory=dict)  # simple name -> qualified name
    on_demand: List[str] = field(default_factory=list)    # packages (or types) imported with .*
    static_single: Dict[str, str] = field(default_factory=dict)  # member name -> declaring type
    static_on_demand: List[str] = field(default_factory=list)    # types imported with static .*


@dataclass
class TypeDeclaration:
    """
    The hierarchy and members of one declared type. Type text (superclass,
    interfaces, field and method types) is kept unresolved and interpreted in
    ``imports``; declarations without imports use fully qualified names.
    """
    qualified_name: str
    kind: DeclarationKind = "class"
    type_parameters: Tuple[str, ...] = ()
    superclass: Optional[str] = None
    interfaces: Tuple[str, ...] = ()
    fields: Dict[str, str] = field(default_factory=dict)
    methods: Dict[str, str] = field(default_factory=dict)  # name -> return type (first overload)
    imports: Optional[ImportContext] = None
    enclosing: Optional[str] = None
    origin: str = "<builtin>"

    @property
    def package(self) -> str:
        if self.imports is not None:
            return self.imports.package
        return _package_of(self.qualified_name)

    @property
    def simple_name(self) -> str:
        return self.qualified_name.rsplit(".", 1)[-1]


def _jdk(
    name: str,
    kind: DeclarationKind = "class",
    params: Tuple[str, ...] = (),
    extends: Optional[str] = None,
    implements: Tuple[str, ...] = (),
    methods: Optional[Dict[str, str]] = None,
    fields: Optional[Dict[str, str]] = None,
) -> TypeDeclaration:
    return TypeDeclaration(
        qualified_name=name,
        kind=kind,
        type_parameters=params,
        superclass=extends,
        interfaces=implements,
        methods=dict(methods or {}),
        fields=dict(fields or {}),
    )


_STRING = "java.lang.String"
_SERIALIZABLE = "java.io.Serializable"


def _boxed(name: str, primitive: str, parse_method: str) -> TypeDeclaration:
    return _jdk(
        name,
        extends="java.lang.Number",
        implements=(f"java.lang.Comparable<{name}>",),
        methods={"valueOf": name, parse_method: primitive, "toString": _STRING, "compareTo": "int"},
        fields={"MAX_VALUE": primitive, "MIN_VALUE": primitive},
    )


def _temporal(name: str, *interfaces: str) -> TypeDeclaration:
    return _jdk(
        name,
        implements=interfaces + (f"java.lang.Comparable<{name}>", _SERIALIZABLE),
        methods={"now": name, "parse": name, "of": name, "toString": _STRING, "format": _STRING},
    )


_COLLECTION_METHODS = {
    "size": "int",
    "isEmpty": "boolean",
    "contains": "boolean",
    "add": "boolean",
    "remove": "boolean",
    "stream": "java.util.stream.Stream<E>",
    "iterator": "java.util.Iterator<E>",
    "toArray": "java.lang.Object[]",
}

# The slice of the JDK, slf4j and logstash type hierarchies the policy needs.
# Archives on the classpath are not introspected, so anything else must come
# from the scanned sources or from a policy file's ``types`` section.
BUILTIN_TYPES: List[TypeDeclaration] = [
    _jdk("java.lang.Object", methods={
        "toString": _STRING, "hashCode": "int", "equals": "boolean", "getClass": "java.lang.Class<?>",
    }),
    _jdk(_SERIALIZABLE, "interface"),
    _jdk("java.lang.Cloneable", "interface"),
    _jdk("java.lang.AutoCloseable", "interface", methods={"close": "void"}),
    _jdk("java.io.Closeable", "interface", implements=("java.lang.AutoCloseable",)),
    _jdk("java.lang.Runnable", "interface", methods={"run": "void"}),
    _jdk("java.lang.Comparable", "interface", ("T",), methods={"compareTo": "int"}),
    _jdk("java.lang.CharSequence", "interface", methods={
        "length": "int", "charAt": "char", "toString": _STRING, "subSequence": "java.lang.CharSequence",
    }),
    _jdk(_STRING, implements=(_SERIALIZABLE, "java.lang.Comparable<java.lang.String>", "java.lang.CharSequence"),
         methods={
             "toString": _STRING, "length": "int", "isEmpty": "boolean", "isBlank": "boolean",
             "charAt": "char", "substring": _STRING, "trim": _STRING, "strip": _STRING,
             "toUpperCase": _STRING, "toLowerCase": _STRING, "replace": _STRING, "concat": _STRING,
             "format": _STRING, "valueOf": _STRING, "join": _STRING, "repeat": _STRING,
             "contains": "boolean", "startsWith": "boolean", "endsWith": "boolean",
             "equalsIgnoreCase": "boolean", "indexOf": "int", "split": "java.lang.String[]",
             "getBytes": "byte[]", "toCharArray": "char[]", "intern": _STRING,
         }),
    _jdk("java.lang.StringBuilder", implements=(_SERIALIZABLE, "java.lang.CharSequence"),
         methods={"append": "java.lang.StringBuilder", "toString": _STRING, "length": "int",
                  "reverse": "java.lang.StringBuilder"}),
    _jdk("java.lang.StringBuffer", implements=(_SERIALIZABLE, "java.lang.CharSequence"),
         methods={"append": "java.lang.StringBuffer", "toString": _STRING, "length": "int"}),
    _jdk("java.lang.Number", implements=(_SERIALIZABLE,), methods={
        "intValue": "int", "longValue": "long", "doubleValue": "double", "floatValue": "float",
        "shortValue": "short", "byteValue": "byte",
    }),
    _boxed("java.lang.Integer", "int", "parseInt"),
    _boxed("java.lang.Long", "long", "parseLong"),
    _boxed("java.lang.Short", "short", "parseShort"),
    _boxed("java.lang.Byte", "byte", "parseByte"),
    _boxed("java.lang.Double", "double", "parseDouble"),
    _boxed("java.lang.Float", "float", "parseFloat"),
    _jdk("java.math.BigDecimal", extends="java.lang.Number",
         implements=("java.lang.Comparable<java.math.BigDecimal>",),
         methods={"valueOf": "java.math.BigDecimal", "add": "java.math.BigDecimal",
                  "toPlainString": _STRING, "toString": _STRING, "scale": "int"}),
    _jdk("java.math.BigInteger", extends="java.lang.Number",
         implements=("java.lang.Comparable<java.math.BigInteger>",),
         methods={"valueOf": "java.math.BigInteger", "add": "java.math.BigInteger", "toString": _STRING}),
    _jdk("java.util.concurrent.atomic.AtomicInteger", extends="java.lang.Number", implements=(_SERIALIZABLE,),
         methods={"get": "int", "incrementAndGet": "int", "getAndIncrement": "int", "toString": _STRING}),
    _jdk("java.util.concurrent.atomic.AtomicLong", extends="java.lang.Number", implements=(_SERIALIZABLE,),
         methods={"get": "long", "incrementAndGet": "long", "getAndIncrement": "long", "toString": _STRING}),
    _jdk("java.util.concurrent.atomic.AtomicBoolean", implements=(_SERIALIZABLE,),
         methods={"get": "boolean", "toString": _STRING}),
    _jdk("java.lang.Boolean", implements=(_SERIALIZABLE, "java.lang.Comparable<java.lang.Boolean>"),
         methods={"booleanValue": "boolean", "valueOf": "java.lang.Boolean", "parseBoolean": "boolean",
                  "toString": _STRING},
         fields={"TRUE": "java.lang.Boolean", "FALSE": "java.lang.Boolean"}),
    _jdk("java.lang.Character", implements=(_SERIALIZABLE, "java.lang.Comparable<java.lang.Character>"),
         methods={"charValue": "char", "valueOf": "java.lang.Character", "toString": _STRING,
                  "isDigit": "boolean", "isLetter": "boolean"}),
    _jdk("java.lang.Class", params=("T",), implements=(_SERIALIZABLE,), methods={
        "getName": _STRING, "getSimpleName": _STRING, "getCanonicalName": _STRING, "toString": _STRING,
        "isInstance": "boolean",
    }),
    _jdk("java.lang.Enum", params=("E",), implements=("java.lang.Comparable<E>", _SERIALIZABLE), methods={
        "name": _STRING, "ordinal": "int", "toString": _STRING,
    }),
    _jdk("java.lang.Record", methods={"toString": _STRING}),
    _jdk("java.lang.Thread", implements=("java.lang.Runnable",), methods={
        "currentThread": "java.lang.Thread", "getName": _STRING, "getId": "long", "toString": _STRING,
        "isInterrupted": "boolean",
    }),
    _jdk("java.lang.System", methods={
        "currentTimeMillis": "long", "nanoTime": "long", "getProperty": _STRING, "getenv": _STRING,
        "lineSeparator": _STRING, "identityHashCode": "int",
    }),
    _jdk("java.lang.StackTraceElement", implements=(_SERIALIZABLE,), methods={
        "getMethodName": _STRING, "getClassName": _STRING, "getLineNumber": "int", "toString": _STRING,
    }),
    # throwables
    _jdk("java.lang.Throwable", implements=(_SERIALIZABLE,), methods={
        "getMessage": _STRING, "getLocalizedMessage": _STRING, "getCause": "java.lang.Throwable",
        "toString": _STRING, "getStackTrace": "java.lang.StackTraceElement[]",
    }),
    _jdk("java.lang.Exception", extends="java.lang.Throwable"),
    _jdk("java.lang.Error", extends="java.lang.Throwable"),
    _jdk("java.lang.AssertionError", extends="java.lang.Error"),
    _jdk("java.lang.VirtualMachineError", extends="java.lang.Error"),
    _jdk("java.lang.OutOfMemoryError", extends="java.lang.VirtualMachineError"),
    _jdk("java.lang.StackOverflowError", extends="java.lang.VirtualMachineError"),
    _jdk("java.lang.RuntimeException", extends="java.lang.Exception"),
    _jdk("java.lang.IllegalArgumentException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.NumberFormatException", extends="java.lang.IllegalArgumentException"),
    _jdk("java.lang.IllegalStateException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.NullPointerException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.UnsupportedOperationException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.IndexOutOfBoundsException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.ClassCastException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.ArithmeticException", extends="java.lang.RuntimeException"),
    _jdk("java.lang.InterruptedException", extends="java.lang.Exception"),
    _jdk("java.lang.CloneNotSupportedException", extends="java.lang.Exception"),
    _jdk("java.lang.ReflectiveOperationException", extends="java.lang.Exception"),
    _jdk("java.lang.ClassNotFoundException", extends="java.lang.ReflectiveOperationException"),
    _jdk("java.io.IOException", extends="java.lang.Exception"),
    _jdk("java.io.FileNotFoundException", extends="java.io.IOException"),
    _jdk("java.io.UncheckedIOException", extends="java.lang.RuntimeException",
         methods={"getCause": "java.io.IOException"}),
    _jdk("java.util.NoSuchElementException", extends="java.lang.RuntimeException"),
    _jdk("java.util.ConcurrentModificationException", extends="java.lang.RuntimeException"),
    _jdk("java.util.concurrent.ExecutionException", extends="java.lang.Exception"),
    _jdk("java.util.concurrent.TimeoutException", extends="java.lang.Exception"),
    # collections
    _jdk("java.lang.Iterable", "interface", ("T",), methods={"iterator": "java.util.Iterator<T>"}),
    _jdk("java.util.Iterator", "interface", ("E",), methods={"next": "E", "hasNext": "boolean"}),
    _jdk("java.util.Collection", "interface", ("E",), implements=("java.lang.Iterable<E>",),
         methods=_COLLECTION_METHODS),
    _jdk("java.util.List", "interface", ("E",), implements=("java.util.Collection<E>",), methods={
        "get": "E", "indexOf": "int", "subList": "java.util.List<E>", "set": "E",
        "of": "java.util.List", "copyOf": "java.util.List",
    }),
    _jdk("java.util.Set", "interface", ("E",), implements=("java.util.Collection<E>",),
         methods={"of": "java.util.Set", "copyOf": "java.util.Set"}),
    _jdk("java.util.SortedSet", "interface", ("E",), implements=("java.util.Set<E>",),
         methods={"first": "E", "last": "E"}),
    _jdk("java.util.NavigableSet", "interface", ("E",), implements=("java.util.SortedSet<E>",)),
    _jdk("java.util.Queue", "interface", ("E",), implements=("java.util.Collection<E>",),
         methods={"peek": "E", "poll": "E", "offer": "boolean"}),
    _jdk("java.util.Deque", "interface", ("E",), implements=("java.util.Queue<E>",),
         methods={"peekFirst": "E", "peekLast": "E", "pop": "E", "push": "void"}),
    _jdk("java.util.RandomAccess", "interface"),
    _jdk("java.util.AbstractCollection", params=("E",), implements=("java.util.Collection<E>",),
         methods={"toString": _STRING}),
    _jdk("java.util.AbstractList", params=("E",), extends="java.util.AbstractCollection<E>",
         implements=("java.util.List<E>",)),
    _jdk("java.util.ArrayList", params=("E",), extends="java.util.AbstractList<E>",
         implements=("java.util.List<E>", "java.util.RandomAccess", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.LinkedList", params=("E",), extends="java.util.AbstractList<E>",
         implements=("java.util.List<E>", "java.util.Deque<E>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.concurrent.CopyOnWriteArrayList", params=("E",),
         implements=("java.util.List<E>", "java.util.RandomAccess", "java.lang.Cloneable", _SERIALIZABLE),
         methods={"toString": _STRING}),
    _jdk("java.util.AbstractSet", params=("E",), extends="java.util.AbstractCollection<E>",
         implements=("java.util.Set<E>",)),
    _jdk("java.util.HashSet", params=("E",), extends="java.util.AbstractSet<E>",
         implements=("java.util.Set<E>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.LinkedHashSet", params=("E",), extends="java.util.HashSet<E>",
         implements=("java.util.Set<E>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.TreeSet", params=("E",), extends="java.util.AbstractSet<E>",
         implements=("java.util.NavigableSet<E>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.ArrayDeque", params=("E",), extends="java.util.AbstractCollection<E>",
         implements=("java.util.Deque<E>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.PriorityQueue", params=("E",), extends="java.util.AbstractCollection<E>",
         implements=("java.util.Queue<E>", _SERIALIZABLE)),
    _jdk("java.util.Map", "interface", ("K", "V"), methods={
        "get": "V", "put": "V", "remove": "V", "getOrDefault": "V", "size": "int", "isEmpty": "boolean",
        "containsKey": "boolean", "containsValue": "boolean", "keySet": "java.util.Set<K>",
        "values": "java.util.Collection<V>", "entrySet": "java.util.Set<java.util.Map.Entry<K,V>>",
        "of": "java.util.Map", "copyOf": "java.util.Map",
    }),
    _jdk("java.util.Map.Entry", "interface", ("K", "V"), methods={"getKey": "K", "getValue": "V"}),
    _jdk("java.util.AbstractMap", params=("K", "V"), implements=("java.util.Map<K,V>",),
         methods={"toString": _STRING}),
    _jdk("java.util.HashMap", params=("K", "V"), extends="java.util.AbstractMap<K,V>",
         implements=("java.util.Map<K,V>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.LinkedHashMap", params=("K", "V"), extends="java.util.HashMap<K,V>",
         implements=("java.util.Map<K,V>",)),
    _jdk("java.util.TreeMap", params=("K", "V"), extends="java.util.AbstractMap<K,V>",
         implements=("java.util.Map<K,V>", "java.lang.Cloneable", _SERIALIZABLE)),
    _jdk("java.util.concurrent.ConcurrentMap", "interface", ("K", "V"), implements=("java.util.Map<K,V>",)),
    _jdk("java.util.concurrent.ConcurrentHashMap", params=("K", "V"), extends="java.util.AbstractMap<K,V>",
         implements=("java.util.concurrent.ConcurrentMap<K,V>", _SERIALIZABLE)),
    _jdk("java.util.Optional", params=("T",), methods={
        "get": "T", "orElse": "T", "orElseThrow": "T", "isPresent": "boolean", "isEmpty": "boolean",
        "of": "java.util.Optional", "ofNullable": "java.util.Optional", "empty": "java.util.Optional",
        "map": "java.util.Optional", "toString": _STRING,
    }),
    _jdk("java.util.stream.Stream", "interface", ("T",), methods={
        "count": "long", "findFirst": "java.util.Optional<T>", "findAny": "java.util.Optional<T>",
        "anyMatch": "boolean", "allMatch": "boolean", "noneMatch": "boolean",
    }),
    _jdk("java.util.Arrays", methods={"toString": _STRING, "deepToString": _STRING, "asList": "java.util.List",
                                      "hashCode": "int"}),
    _jdk("java.util.Collections", methods={
        "emptyList": "java.util.List", "emptySet": "java.util.Set", "emptyMap": "java.util.Map",
        "unmodifiableList": "java.util.List", "unmodifiableSet": "java.util.Set",
        "unmodifiableMap": "java.util.Map", "singletonList": "java.util.List",
    }),
    _jdk("java.util.Objects", methods={
        "toString": _STRING, "hash": "int", "hashCode": "int", "equals": "boolean", "isNull": "boolean",
        "nonNull": "boolean",
    }),
    # utility value types
    _jdk("java.util.UUID", implements=(_SERIALIZABLE, "java.lang.Comparable<java.util.UUID>"), methods={
        "randomUUID": "java.util.UUID", "fromString": "java.util.UUID", "nameUUIDFromBytes": "java.util.UUID",
        "toString": _STRING,
    }),
    _jdk("java.util.Currency", implements=(_SERIALIZABLE,), methods={
        "getInstance": "java.util.Currency", "getCurrencyCode": _STRING, "getSymbol": _STRING,
        "toString": _STRING,
    }),
    _jdk("java.util.Locale", implements=("java.lang.Cloneable", _SERIALIZABLE), methods={
        "getDefault": "java.util.Locale", "forLanguageTag": "java.util.Locale", "getLanguage": _STRING,
        "getCountry": _STRING, "toLanguageTag": _STRING, "toString": _STRING,
    }),
    _jdk("java.util.Date", implements=(_SERIALIZABLE, "java.lang.Cloneable", "java.lang.Comparable<java.util.Date>"),
         methods={"getTime": "long", "toInstant": "java.time.Instant", "toString": _STRING}),
    _jdk("java.io.File", implements=(_SERIALIZABLE, "java.lang.Comparable<java.io.File>"), methods={
        "getName": _STRING, "getPath": _STRING, "getAbsolutePath": _STRING, "toString": _STRING,
        "exists": "boolean", "length": "long", "toPath": "java.nio.file.Path",
    }),
    _jdk("java.nio.file.Path", "interface", implements=("java.lang.Comparable<java.nio.file.Path>",), methods={
        "getFileName": "java.nio.file.Path", "toAbsolutePath": "java.nio.file.Path", "toString": _STRING,
        "of": "java.nio.file.Path", "toFile": "java.io.File",
    }),
    _jdk("java.net.URI", implements=("java.lang.Comparable<java.net.URI>", _SERIALIZABLE), methods={
        "create": "java.net.URI", "getHost": _STRING, "getPath": _STRING, "toString": _STRING,
    }),
    # java.time
    _jdk("java.time.temporal.TemporalAccessor", "interface"),
    _jdk("java.time.temporal.Temporal", "interface", implements=("java.time.temporal.TemporalAccessor",)),
    _jdk("java.time.temporal.TemporalAdjuster", "interface"),
    _jdk("java.time.temporal.TemporalAmount", "interface"),
    _jdk("java.time.chrono.ChronoLocalDate", "interface",
         implements=("java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster")),
    _temporal("java.time.Instant", "java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster"),
    _temporal("java.time.LocalDate", "java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster",
              "java.time.chrono.ChronoLocalDate"),
    _temporal("java.time.LocalDateTime", "java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster"),
    _temporal("java.time.LocalTime", "java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster"),
    _temporal("java.time.OffsetDateTime", "java.time.temporal.Temporal", "java.time.temporal.TemporalAdjuster"),
    _temporal("java.time.ZonedDateTime", "java.time.temporal.Temporal"),
    _temporal("java.time.Duration", "java.time.temporal.TemporalAmount"),
    _temporal("java.time.Period", "java.time.temporal.TemporalAmount"),
    _jdk("java.time.ZoneId", implements=(_SERIALIZABLE,), methods={
        "of": "java.time.ZoneId", "systemDefault": "java.time.ZoneId", "getId": _STRING, "toString": _STRING,
    }),
    _jdk("java.time.ZoneOffset", extends="java.time.ZoneId",
         implements=("java.time.temporal.TemporalAccessor", "java.lang.Comparable<java.time.ZoneOffset>"),
         fields={"UTC": "java.time.ZoneOffset"}),
    _jdk("java.time.Clock", methods={"instant": "java.time.Instant", "millis": "long",
                                     "systemUTC": "java.time.Clock"}),
    _jdk("java.time.format.DateTimeFormatter", methods={"format": _STRING, "ofPattern":
                                                        "java.time.format.DateTimeFormatter"}),
    # slf4j and logstash-logback-encoder
    _jdk("org.slf4j.Logger", "interface", methods={
        "trace": "void", "debug": "void", "info": "void", "warn": "void", "error": "void",
        "isTraceEnabled": "boolean", "isDebugEnabled": "boolean", "isInfoEnabled": "boolean",
        "isWarnEnabled": "boolean", "isErrorEnabled": "boolean", "getName": _STRING,
    }),
    _jdk("org.slf4j.LoggerFactory", methods={"getLogger": "org.slf4j.Logger"}),
    _jdk("org.slf4j.Marker", "interface", implements=(_SERIALIZABLE,), methods={
        "getName": _STRING, "add": "void", "contains": "boolean",
    }),
    _jdk("org.slf4j.MarkerFactory", methods={"getMarker": "org.slf4j.Marker",
                                             "getDetachedMarker": "org.slf4j.Marker"}),
    _jdk("org.slf4j.MDC", methods={"get": _STRING, "put": "void", "remove": "void"}),
    _jdk("net.logstash.logback.marker.LogstashBasicMarker", implements=("org.slf4j.Marker",),
         methods={"toString": _STRING}),
    _jdk("net.logstash.logback.marker.LogstashMarker", extends="net.logstash.logback.marker.LogstashBasicMarker",
         methods={"and": "net.logstash.logback.marker.LogstashMarker"}),
    _jdk("net.logstash.logback.marker.Markers", methods={
        "append": "net.logstash.logback.marker.LogstashMarker",
        "appendEntries": "net.logstash.logback.marker.LogstashMarker",
        "appendFields": "net.logstash.logback.marker.LogstashMarker",
        "appendArray": "net.logstash.logback.marker.LogstashMarker",
        "appendRaw": "net.logstash.logback.marker.LogstashMarker",
        "empty": "net.logstash.logback.marker.LogstashMarker",
    }),
    _jdk("net.logstash.logback.argument.StructuredArgument", "interface"),
    _jdk("net.logstash.logback.argument.StructuredArguments", methods={
        "keyValue": "net.logstash.logback.argument.StructuredArgument",
        "kv": "net.logstash.logback.argument.StructuredArgument",
        "value": "net.logstash.logback.argument.StructuredArgument",
        "v": "net.logstash.logback.argument.StructuredArgument",
        "entries": "net.logstash.logback.argument.StructuredArgument",
        "fields": "net.logstash.logback.argument.StructuredArgument",
    }),
]


# ============================================================
# ===================== TYPE TEXT ============================
# ============================================================

@dataclass(frozen=True)
class _TypeRef:
    """Parsed, unresolved type text such as ``Map<K, List<? extends V>>[]``."""
    name: str
    arguments: Tuple["_TypeRef", ...] = ()
    dimensions: int = 0
    bound: Optional[str] = None  # "extends" / "super" for bounded wildcards


_TYPE_TOKEN = re.compile(
    r"\s*(\.\.\.|\[\s*\]|[<>,?&]|@?[A-Za-z_$][\w$]*(?:\s*\.\s*[A-Za-z_$][\w$]*)*)"
)


def _tokenize_type(text: str) -> Optional[List[str]]:
    tokens: List[str] = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TYPE_TOKEN.match(text, position)
        if match is None:
            return None
        token = re.sub(r"\s+", "", match.group(1))
        position = match.end()
        if token.startswith("@"):
            continue
        tokens.append(token)
    return tokens


def parse_type_text(text: str) -> Optional[_TypeRef]:
    """
    Parse Java type text. Annotations are dropped, intersection bounds are
    reduced to their first member. Returns None for text that is not a type.
    """
    tokens = _tokenize_type(text or "")
    if not tokens:
        return None
    try:
        ref, index = _parse_type_tokens(tokens, 0)
    except IndexError:
        return None
    if index != len(tokens):
        return None
    return ref


def _parse_type_tokens(tokens: List[str], index: int) -> Tuple[_TypeRef, int]:
    token = tokens[index]
    if token == "?":
        index += 1
        if index < len(tokens) and tokens[index] in ("extends", "super"):
            bound = tokens[index]
            inner, index = _parse_type_tokens(tokens, index + 1)
            return _TypeRef("?", (inner,), bound=bound), index
        return _TypeRef("?"), index

    if token in ("<", ">", ",", "&") or token.startswith("["):
        raise IndexError(f"unexpected token {token!r}")

    index += 1
    arguments: List[_TypeRef] = []
    if index < len(tokens) and tokens[index] == "<":
        index += 1
        while tokens[index] != ">":
            argument, index = _parse_type_tokens(tokens, index)
            arguments.append(argument)
            while tokens[index] == "&":
                _, index = _parse_type_tokens(tokens, index + 1)
            if tokens[index] == ",":
                index += 1
        index += 1

    dimensions = 0
    while index < len(tokens) and (tokens[index].startswith("[") or tokens[index] == "..."):
        dimensions += 1
        index += 1
    return _TypeRef(token, tuple(arguments), dimensions), index


# ============================================================
# ===================== TYPE REGISTRY ========================
# ============================================================

@dataclass
class _NameScope:
    """
    Where type text is interpreted: file imports, the declaring type (for
    member and enclosing types) and the type variables in scope. A type
    variable mapped to None stays a type variable.
    """
    imports: Optional[ImportContext] = None
    owner: Optional[TypeDeclaration] = None
    type_variables: Dict[str, Optional[TypeDescriptor]] = field(default_factory=dict)


class TypeRegistry:
    """
    Builds TypeDescriptors from declarations, memoized for the run.

    Later declarations replace earlier ones with the same qualified name, so
    scanned sources win over policy types, which win over the built-in
    catalogue. Generic supertypes are instantiated with the subtype's type
    arguments; a raw type has raw supertypes.
    """

    def __init__(self, declarations: Iterable[TypeDeclaration] = (), *, builtins: bool = True) -> None:
        self._declarations: Dict[str, TypeDeclaration] = {}
        self._descriptors: Dict[Tuple[str, Tuple[TypeDescriptor, ...]], TypeDescriptor] = {}
        self._building: Set[Tuple[str, Tuple[TypeDescriptor, ...]]] = set()
        if builtins:
            for declaration in BUILTIN_TYPES:
                self.declare(declaration)
        for declaration in declarations:
            self.declare(declaration)

    def declare(self, declaration: TypeDeclaration) -> None:
        self._declarations[declaration.qualified_name] = declaration
        self._descriptors.clear()

    def declaration(self, qualified_name: str) -> Optional[TypeDeclaration]:
        return self._declarations.get(qualified_name)

    def is_declared(self, qualified_name: str) -> bool:
        return qualified_name in self._declarations

    # ---------------------------------------------------------- names

    def qualify(self, name: str, scope: _NameScope) -> Optional[str]:
        """
        Resolve a simple or dotted type name to a qualified name. Imported or
        package-qualified names that nothing declares are still returned; they
        become opaque types.
        """
        name = name.replace(" ", "")
        if "." not in name:
            return self._qualify_simple(name, scope)
        if name in self._declarations:
            return name
        head, rest = name.split(".", 1)
        head_qualified = self._qualify_simple(head, scope)
        if head_qualified is not None:
            return f"{head_qualified}.{rest}"
        if head[:1].islower():
            return name
        return None

    def _qualify_simple(self, name: str, scope: _NameScope) -> Optional[str]:
        owner = scope.owner
        while owner is not None:
            member = f"{owner.qualified_name}.{name}"
            if member in self._declarations:
                return member
            if owner.simple_name == name:
                return owner.qualified_name
            owner = self._declarations.get(owner.enclosing) if owner.enclosing else None

        imports = scope.imports
        if imports is not None:
            if name in imports.single:
                return imports.single[name]
            same_package = f"{imports.package}.{name}" if imports.package else name
            if same_package in self._declarations:
                return same_package

        implicit = f"java.lang.{name}"
        if implicit in self._declarations:
            return implicit

        if imports is not None:
            for package in imports.on_demand:
                candidate = f"{package}.{name}"
                if candidate in self._declarations:
                    return candidate

        if name in self._declarations:
            return name
        return None

    # ---------------------------------------------------- descriptors

    def resolve(self, text: str, scope: Optional[_NameScope] = None) -> Optional[TypeDescriptor]:
        ref = parse_type_text(text)
        if ref is None:
            return None
        return self._from_ref(ref, scope or _NameScope())

    def descriptor(
        self,
        qualified_name: str,
        arguments: Sequence[TypeDescriptor] = (),
    ) -> TypeDescriptor:
        arguments = tuple(arguments)
        key = (qualified_name, arguments)
        cached = self._descriptors.get(key)
        if cached is not None:
            return cached

        name = _parameterized_name(qualified_name, arguments)
        declaration = self._declarations.get(qualified_name)
        if declaration is None:
            opaque = TypeDescriptor(
                name,
                kind="parameterized" if arguments else "class",
                package=_package_of(qualified_name),
                type_arguments=arguments,
            )
            self._descriptors[key] = opaque
            return opaque

        kind: TypeKind = "parameterized" if arguments else _DESCRIPTOR_KINDS[declaration.kind]
        if key in self._building:
            # self-referential generics, e.g. Color extends Enum<Color>
            return TypeDescriptor(name, kind=kind, package=declaration.package, type_arguments=arguments)

        self._building.add(key)
        try:
            raw = bool(declaration.type_parameters) and not arguments
            env: Dict[str, Optional[TypeDescriptor]] = {}
            for index, parameter in enumerate(declaration.type_parameters):
                env[parameter] = arguments[index] if index < len(arguments) else None
            scope = _NameScope(imports=declaration.imports, owner=declaration, type_variables=env)

            superclass = self._supertype(self._superclass_text(declaration), scope, raw)
            interfaces = tuple(
                supertype
                for supertype in (self._supertype(text, scope, raw) for text in declaration.interfaces)
                if supertype is not None
            )
        finally:
            self._building.discard(key)

        result = TypeDescriptor(
            name,
            kind=kind,
            package=declaration.package,
            superclass=superclass,
            interfaces=interfaces,
            type_arguments=arguments,
        )
        self._descriptors[key] = result
        return result

    def _superclass_text(self, declaration: TypeDeclaration) -> Optional[str]:
        if declaration.superclass:
            return declaration.superclass
        if declaration.kind == "interface" or declaration.qualified_name == "java.lang.Object":
            return None
        if declaration.kind == "enum":
            return f"java.lang.Enum<{declaration.qualified_name}>"
        if declaration.kind == "record":
            return "java.lang.Record"
        return "java.lang.Object"

    def _supertype(self, text: Optional[str], scope: _NameScope, raw: bool) -> Optional[TypeDescriptor]:
        if not text:
            return None
        ref = parse_type_text(text)
        if ref is None:
            return None
        return self._from_ref(ref, scope, erase=raw)

    def _from_ref(self, ref: _TypeRef, scope: _NameScope, erase: bool = False) -> Optional[TypeDescriptor]:
        base: Optional[TypeDescriptor]
        if ref.name == "?":
            if ref.arguments:
                bound = self._from_ref(ref.arguments[0], scope)
                bound_name = bound.qualified_name if bound is not None else ref.arguments[0].name
                base = TypeDescriptor(f"? {ref.bound} {bound_name}", kind="wildcard")
            else:
                base = TypeDescriptor("?", kind="wildcard")
        elif ref.name in _PRIMITIVES:
            base = _PRIMITIVES[ref.name]
        elif ref.name in scope.type_variables:
            base = scope.type_variables[ref.name] or TypeDescriptor(ref.name, kind="type_variable")
        else:
            qualified = self.qualify(ref.name, scope)
            if qualified is None:
                return None
            arguments: Tuple[TypeDescriptor, ...] = ()
            if ref.arguments and not erase:
                arguments = tuple(
                    self._from_ref(argument, scope) or TypeDescriptor(argument.name)
                    for argument in ref.arguments
                )
            base = self.descriptor(qualified, arguments)

        for _ in range(ref.dimensions):
            base = array_type(base)
        return base

    # ------------------------------------------------------- members

    def _member_scope(self, declaration: TypeDeclaration, owner: TypeDescriptor) -> _NameScope:
        env: Dict[str, Optional[TypeDescriptor]] = {}
        for index, parameter in enumerate(declaration.type_parameters):
            if index < len(owner.type_arguments):
                env[parameter] = owner.type_arguments[index]
            else:
                env[parameter] = self.descriptor("java.lang.Object")
        return _NameScope(imports=declaration.imports, owner=declaration, type_variables=env)

    def member_owners(self, receiver: TypeDescriptor) -> Iterator[TypeDescriptor]:
        """
        Where members of ``receiver`` are looked up: the superclass chain
        first, then interfaces breadth-first, then java.lang.Object.
        """
        chain: List[TypeDescriptor] = []
        current: Optional[TypeDescriptor] = receiver
        while current is not None and current not in chain:
            chain.append(current)
            current = current.superclass

        seen: Set[TypeDescriptor] = set(chain)
        yield from chain
        queue: deque[TypeDescriptor] = deque()
        for member in chain:
            queue.extend(member.interfaces)
        while queue:
            interface = queue.popleft()
            if interface in seen:
                continue
            seen.add(interface)
            yield interface
            queue.extend(interface.interfaces)

        if not any(owner.erasure == "java.lang.Object" for owner in seen):
            yield self.descriptor("java.lang.Object")

    def find_method(self, receiver: TypeDescriptor, name: str) -> Optional[MethodBinding]:
        for owner in self.member_owners(receiver):
            declaration = self._declarations.get(owner.erasure)
            if declaration is None or name not in declaration.methods:
                continue
            return_type = self.resolve(declaration.methods[name], self._member_scope(declaration, owner))
            return MethodBinding(name=name, declaring_type=owner, return_type=return_type)
        return None

    def find_field(self, receiver: TypeDescriptor, name: str) -> Tuple[bool, Optional[TypeDescriptor]]:
        """(found, type) for a field or enum constant visible on ``receiver``."""
        if receiver.kind == "array" and name == "length":
            return True, _PRIMITIVES["int"]
        for owner in self.member_owners(receiver):
            declaration = self._declarations.get(owner.erasure)
            if declaration is None or name not in declaration.fields:
                continue
            return True, self.resolve(declaration.fields[name], self._member_scope(declaration, owner))
        return False, None


# ============================================================
# ==================== POLICY LOADING ========================
# ============================================================

_POLICY_LIST_KEYS = (
    "allowed_packages",
    "allowed_superclasses",
    "allowed_language_classes",
    "allowed_parameterized_classes",
    "allowed_utility_classes",
)
_POLICY_SCALAR_KEYS = ("marker_type", "collection_type", "throwable_type")
_POLICY_KNOWN_KEYS = set(_POLICY_LIST_KEYS) | set(_POLICY_SCALAR_KEYS) | {"logger", "types"}


def _to_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return [str(value)]


def load_policy(path: Optional[str]) -> Policy:
    """
    Load a Policy from a YAML file; no path means the default policy.
    Keys that are present replace the defaults wholesale.
    """
    if not path:
        return Policy()
    try:
        with open(path, "r", encoding="utf-8") as handle:
            document = yaml.safe_load(handle)
    except FileNotFoundError as exc:
        raise PolicyError(f"Policy file not found: {path}") from exc
    except OSError as exc:
        raise PolicyError(f"Could not read policy file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise PolicyError(f"Policy file {path} is not valid YAML: {exc}") from exc

    if document is None:
        return Policy()
    if not isinstance(document, dict):
        raise PolicyError(f"Policy file {path} must contain a mapping at the top level.")
    return policy_from_mapping(document, origin=path)


def policy_from_mapping(document: Dict[str, Any], origin: str = "<policy>") -> Policy:
    policy = Policy()

    unknown = sorted(str(key) for key in document if key not in _POLICY_KNOWN_KEYS)
    if unknown:
        sys.stderr.write(f"[logsafe] Ignoring unknown policy key(s) in {origin}: {unknown}.\n")

    logger = document.get("logger")
    if logger is not None:
        if not isinstance(logger, dict):
            raise PolicyError(f"'logger' in {origin} must be a mapping with 'type' and/or 'methods'.")
        if logger.get("type"):
            policy.logger_type = str(logger["type"])
        if logger.get("methods") is not None:
            policy.logger_methods = tuple(_to_str_list(logger["methods"]))

    for key in _POLICY_SCALAR_KEYS:
        if document.get(key):
            setattr(policy, key, str(document[key]))

    for key in _POLICY_LIST_KEYS:
        if key in document:
            setattr(policy, key, tuple(_to_str_list(document[key])))

    raw_types = document.get("types") or []
    if not isinstance(raw_types, list):
        raise PolicyError(f"'types' in {origin} must be a list of type declarations.")
    policy.types = [_type_declaration_from_mapping(raw, origin) for raw in raw_types]
    return policy


def _type_declaration_from_mapping(raw: Any, origin: str) -> TypeDeclaration:
    if not isinstance(raw, dict) or not raw.get("name"):
        raise PolicyError(f"Every entry under 'types' in {origin} needs a 'name': {raw!r}")
    kind = str(raw.get("kind", "class"))
    if kind not in _DESCRIPTOR_KINDS:
        raise PolicyError(
            f"Type {raw['name']} in {origin} has unknown kind {kind!r}; "
            f"expected one of {sorted(_DESCRIPTOR_KINDS)}."
        )
    methods = raw.get("methods") or {}
    fields_ = raw.get("fields") or {}
    if not isinstance(methods, dict) or not isinstance(fields_, dict):
        raise PolicyError(f"'methods' and 'fields' of {raw['name']} in {origin} must be mappings.")
    return TypeDeclaration(
        qualified_name=str(raw["name"]),
        kind=kind,  # type: ignore[arg-type]
        type_parameters=tuple(_to_str_list(raw.get("params"))),
        superclass=str(raw["superclass"]) if raw.get("superclass") else None,
        interfaces=tuple(_to_str_list(raw.get("interfaces"))),
        fields={str(k): str(v) for k, v in fields_.items()},
        methods={str(k): str(v) for k, v in methods.items()},
        origin=origin,
    )


# ============================================================
# ==================== SOURCE BINDING ========================
# ============================================================

_TYPE_DECLARATION_NODES: Dict[str, DeclarationKind] = {
    "class_declaration": "class",
    "interface_declaration": "interface",
    "annotation_type_declaration": "interface",
    "enum_declaration": "enum",
    "record_declaration": "record",
}

_INTEGER_LITERALS = {
    "decimal_integer_literal",
    "hex_integer_literal",
    "octal_integer_literal",
    "binary_integer_literal",
}
_FLOAT_LITERALS = {"decimal_floating_point_literal", "hex_floating_point_literal"}
_COMMENT_NODES = {"line_comment", "block_comment", "comment"}
_SCOPE_NODES = {
    "block",
    "for_statement",
    "catch_clause",
    "try_with_resources_statement",
    "switch_block_statement_group",
    "switch_rule",
}
_COMPARISON_OPERATORS = {"==", "!=", "<", ">", "<=", ">=", "&&", "||"}
_NUMERIC_RANK = {"byte": 1, "short": 2, "char": 2, "int": 3, "long": 4, "float": 5, "double": 6}
_UNBOXED = {
    "java.lang.Integer": "int",
    "java.lang.Long": "long",
    "java.lang.Short": "short",
    "java.lang.Byte": "byte",
    "java.lang.Character": "char",
    "java.lang.Float": "float",
    "java.lang.Double": "double",
    "java.lang.Boolean": "boolean",
}
_BOXED = {primitive: boxed for boxed, primitive in _UNBOXED.items()}
_BOXED["void"] = "java.lang.Void"


def _node_text(node: Optional[Node]) -> str:
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def _is_super_call(node: Node) -> bool:
    receiver = node.child_by_field_name("object")
    return receiver is not None and receiver.type == "super"


def _compact(text: str) -> str:
    return re.sub(r"\s+", "", text)


def _import_context(root: Node) -> ImportContext:
    context = ImportContext()
    for child in root.named_children:
        if child.type == "package_declaration":
            for part in child.named_children:
                if part.type in ("scoped_identifier", "identifier"):
                    context.package = _compact(_node_text(part))
        elif child.type == "import_declaration":
            name_node = next(
                (part for part in child.named_children if part.type in ("scoped_identifier", "identifier")),
                None,
            )
            if name_node is None:
                continue
            name = _compact(_node_text(name_node))
            is_static = any(part.type == "static" for part in child.children)
            on_demand = any(part.type == "asterisk" for part in child.children)
            if is_static and on_demand:
                context.static_on_demand.append(name)
            elif is_static:
                owner, _, member = name.rpartition(".")
                context.static_single.setdefault(member, owner)
            elif on_demand:
                context.on_demand.append(name)
            else:
                context.single[name.rsplit(".", 1)[-1]] = name
    return context


def _type_parameter_names(node: Optional[Node]) -> Tuple[str, ...]:
    if node is None:
        return ()
    names: List[str] = []
    for parameter in node.named_children:
        if parameter.type != "type_parameter":
            continue
        for part in parameter.named_children:
            if part.type in ("type_identifier", "identifier"):
                names.append(_node_text(part))
                break
    return tuple(names)


def _declarator_type(type_text: str, declarator: Node) -> str:
    dimensions = declarator.child_by_field_name("dimensions")
    return type_text + _compact(_node_text(dimensions)) if dimensions is not None else type_text


def _collect_members(body: Node, declaration: TypeDeclaration) -> None:
    for member in body.named_children:
        if member.type in ("field_declaration", "constant_declaration"):
            type_text = _node_text(member.child_by_field_name("type"))
            for declarator in member.children_by_field_name("declarator"):
                name = _node_text(declarator.child_by_field_name("name"))
                declaration.fields.setdefault(name, _declarator_type(type_text, declarator))
        elif member.type == "method_declaration":
            name = _node_text(member.child_by_field_name("name"))
            return_text = _node_text(member.child_by_field_name("type"))
            declaration.methods.setdefault(name, _declarator_type(return_text, member))
        elif member.type == "enum_constant":
            declaration.fields[_node_text(member.child_by_field_name("name"))] = declaration.qualified_name
        elif member.type == "enum_body_declarations":
            _collect_members(member, declaration)


def _declaration_from_node(
    node: Node,
    enclosing: Optional[TypeDeclaration],
    imports: ImportContext,
    origin: str,
) -> Optional[TypeDeclaration]:
    name = _node_text(node.child_by_field_name("name"))
    if not name:
        return None
    if enclosing is not None:
        qualified_name = f"{enclosing.qualified_name}.{name}"
    else:
        qualified_name = f"{imports.package}.{name}" if imports.package else name

    superclass: Optional[str] = None
    interfaces: List[str] = []
    for child in node.named_children:
        if child.type == "superclass" and child.named_children:
            superclass = _node_text(child.named_children[-1])
        elif child.type in ("super_interfaces", "extends_interfaces"):
            for type_list in child.named_children:
                if type_list.type == "type_list":
                    interfaces.extend(_node_text(t) for t in type_list.named_children)

    declaration = TypeDeclaration(
        qualified_name=qualified_name,
        kind=_TYPE_DECLARATION_NODES[node.type],
        type_parameters=_type_parameter_names(node.child_by_field_name("type_parameters")),
        superclass=superclass,
        interfaces=tuple(interfaces),
        imports=imports,
        enclosing=enclosing.qualified_name if enclosing is not None else None,
        origin=origin,
    )

    if node.type == "record_declaration":
        components = node.child_by_field_name("parameters")
        for component in components.named_children if components is not None else []:
            if component.type != "formal_parameter":
                continue
            component_name = _node_text(component.child_by_field_name("name"))
            component_type = _node_text(component.child_by_field_name("type"))
            declaration.fields[component_name] = component_type
            declaration.methods[component_name] = component_type

    body = node.child_by_field_name("body")
    if body is not None:
        _collect_members(body, declaration)
    return declaration


def _collect_type_declarations(
    root: Node,
    imports: ImportContext,
    origin: str,
) -> Dict[Tuple[int, int], TypeDeclaration]:
    """Every type declared in a file, keyed by the (start, end) bytes of its node."""
    found: Dict[Tuple[int, int], TypeDeclaration] = {}
    pending: List[Tuple[Node, Optional[TypeDeclaration]]] = [(root, None)]
    while pending:
        node, enclosing = pending.pop()
        for child in node.named_children:
            if child.type in _TYPE_DECLARATION_NODES:
                declaration = _declaration_from_node(child, enclosing, imports, origin)
                if declaration is not None:
                    found[(child.start_byte, child.end_byte)] = declaration
                pending.append((child, declaration or enclosing))
            else:
                pending.append((child, enclosing))
    return found


class _OffsetMap:
    """Byte offsets (what tree-sitter reports) to character offsets."""

    def __init__(self, text: str, data: bytes) -> None:
        self._starts: Optional[List[int]] = None
        if len(text) != len(data):
            starts: List[int] = []
            position = 0
            for char in text:
                starts.append(position)
                position += len(char.encode("utf-8"))
            self._starts = starts

    def char(self, byte_offset: int) -> int:
        if self._starts is None:
            return byte_offset
        return bisect.bisect_left(self._starts, byte_offset)


@dataclass
class _ParsedSource:
    path: str
    text: str
    data: bytes
    root: Node
    imports: ImportContext
    declarations: Dict[Tuple[int, int], TypeDeclaration]


class _UnitBinder:
    """
    Walks one syntax tree with lexical scopes and records every method
    invocation, in end-of-node order, with its binding and typed arguments.
    """

    def __init__(self, registry: TypeRegistry, source: _ParsedSource) -> None:
        self.registry = registry
        self.source = source
        self.offsets = _OffsetMap(source.text, source.data)
        self.invocations: List[InvocationNode] = []
        self._frames: List[Dict[str, Optional[TypeDescriptor]]] = [{}]
        self._type_variables: List[Dict[str, Optional[TypeDescriptor]]] = [{}]
        self._owners: List[TypeDeclaration] = []
        self._bindings: Dict[Tuple[int, int], Optional[MethodBinding]] = {}

    def bind(self) -> List[InvocationNode]:
        self._walk(self.source.root)
        return self.invocations

    # ------------------------------------------------------ scopes

    def _scope(self) -> _NameScope:
        variables: Dict[str, Optional[TypeDescriptor]] = {}
        for frame in self._type_variables:
            variables.update(frame)
        owner = self._owners[-1] if self._owners else None
        return _NameScope(imports=self.source.imports, owner=owner, type_variables=variables)

    def _push(self, type_variables: Iterable[str] = ()) -> None:
        self._frames.append({})
        self._type_variables.append(
            {name: TypeDescriptor(name, kind="type_variable") for name in type_variables}
        )

    def _pop(self) -> None:
        self._frames.pop()
        self._type_variables.pop()

    def _declare(self, name: str, type_: Optional[TypeDescriptor]) -> None:
        if name:
            self._frames[-1][name] = type_

    def _resolve(self, type_node: Optional[Node], dimensions: Optional[Node] = None) -> Optional[TypeDescriptor]:
        if type_node is None:
            return None
        text = _node_text(type_node)
        if dimensions is not None:
            text += _compact(_node_text(dimensions))
        return self.registry.resolve(text, self._scope())

    def _owner_type(self, declaration: TypeDeclaration) -> TypeDescriptor:
        arguments = tuple(TypeDescriptor(name, kind="type_variable") for name in declaration.type_parameters)
        return self.registry.descriptor(declaration.qualified_name, arguments)

    # ------------------------------------------------------ walking

    def _walk(self, node: Node) -> None:
        handler = getattr(self, "_enter_" + node.type, None)
        if handler is not None:
            handler(node)
        elif node.type in _TYPE_DECLARATION_NODES:
            self._enter_type_declaration(node)
        elif node.type in _SCOPE_NODES:
            self._push()
            self._walk_children(node)
            self._pop()
        else:
            self._walk_children(node)

    def _walk_children(self, node: Node) -> None:
        for child in node.named_children:
            self._walk(child)

    def _enter_type_declaration(self, node: Node) -> None:
        declaration = self.source.declarations.get((node.start_byte, node.end_byte))
        if declaration is None:
            self._walk_children(node)
            return
        self._owners.append(declaration)
        self._push(declaration.type_parameters)
        self._walk_children(node)
        self._pop()
        self._owners.pop()

    def _enter_method_declaration(self, node: Node) -> None:
        self._push(_type_parameter_names(node.child_by_field_name("type_parameters")))
        self._declare_parameters(node.child_by_field_name("parameters"))
        body = node.child_by_field_name("body")
        if body is not None:
            self._walk(body)
        self._pop()

    _enter_constructor_declaration = _enter_method_declaration

    def _declare_parameters(self, parameters: Optional[Node]) -> None:
        if parameters is None:
            return
        for parameter in parameters.named_children:
            if parameter.type == "formal_parameter":
                name = _node_text(parameter.child_by_field_name("name"))
                self._declare(
                    name,
                    self._resolve(parameter.child_by_field_name("type"), parameter.child_by_field_name("dimensions")),
                )
            elif parameter.type == "spread_parameter":
                type_node = next(
                    (part for part in parameter.named_children if part.type not in ("modifiers", "variable_declarator")),
                    None,
                )
                declarator = next((part for part in parameter.named_children if part.type == "variable_declarator"), None)
                component = self._resolve(type_node)
                if declarator is not None:
                    self._declare(
                        _node_text(declarator.child_by_field_name("name")),
                        array_type(component) if component is not None else None,
                    )
            elif parameter.type == "identifier":
                self._declare(_node_text(parameter), None)

    def _enter_lambda_expression(self, node: Node) -> None:
        self._push()
        parameters = node.child_by_field_name("parameters")
        if parameters is not None:
            if parameters.type == "identifier":
                self._declare(_node_text(parameters), None)
            elif parameters.type == "inferred_parameters":
                for name in parameters.named_children:
                    self._declare(_node_text(name), None)
            else:
                self._declare_parameters(parameters)
        body = node.child_by_field_name("body")
        if body is not None:
            self._walk(body)
        self._pop()

    def _enter_enhanced_for_statement(self, node: Node) -> None:
        self._push()
        value = node.child_by_field_name("value")
        if value is not None:
            self._walk(value)
        type_node = node.child_by_field_name("type")
        if _node_text(type_node) == "var":
            variable_type = self._element_type(self._type_of(value) if value is not None else None)
        else:
            variable_type = self._resolve(type_node, node.child_by_field_name("dimensions"))
        self._declare(_node_text(node.child_by_field_name("name")), variable_type)
        body = node.child_by_field_name("body")
        if body is not None:
            self._walk(body)
        self._pop()

    def _element_type(self, iterable: Optional[TypeDescriptor]) -> Optional[TypeDescriptor]:
        if iterable is None:
            return None
        if iterable.kind == "array":
            return iterable.component
        for owner in self.registry.member_owners(iterable):
            if owner.erasure == "java.lang.Iterable" and owner.type_arguments:
                return owner.type_arguments[0]
        return None

    def _enter_catch_formal_parameter(self, node: Node) -> None:
        catch_type = next((part for part in node.named_children if part.type == "catch_type"), None)
        alternatives = catch_type.named_children if catch_type is not None else []
        # a multi-catch variable is typed by its first alternative
        caught = self._resolve(alternatives[0]) if alternatives else None
        self._declare(_node_text(node.child_by_field_name("name")), caught)

    def _enter_resource(self, node: Node) -> None:
        value = node.child_by_field_name("value")
        if value is not None:
            self._walk(value)
        name = node.child_by_field_name("name")
        if name is None:
            self._walk_children(node)
            return
        type_node = node.child_by_field_name("type")
        if _node_text(type_node) == "var":
            resource_type = self._type_of(value) if value is not None else None
        else:
            resource_type = self._resolve(type_node, node.child_by_field_name("dimensions"))
        self._declare(_node_text(name), resource_type)

    def _enter_local_variable_declaration(self, node: Node) -> None:
        type_node = node.child_by_field_name("type")
        inferred = _node_text(type_node) == "var"
        for declarator in node.children_by_field_name("declarator"):
            value = declarator.child_by_field_name("value")
            if value is not None:
                self._walk(value)
            if inferred:
                variable_type = self._type_of(value) if value is not None else None
            else:
                variable_type = self._resolve(type_node, declarator.child_by_field_name("dimensions"))
            self._declare(_node_text(declarator.child_by_field_name("name")), variable_type)

    def _enter_method_invocation(self, node: Node) -> None:
        self._walk_children(node)
        if _is_super_call(node):
            return
        arguments = node.child_by_field_name("arguments")
        start = self.offsets.char(node.start_byte)
        self.invocations.append(
            InvocationNode(
                start=start,
                length=self.offsets.char(node.end_byte) - start,
                name=_node_text(node.child_by_field_name("name")),
                binding=self._bind_invocation(node),
                arguments=[self._expression(argument) for argument in arguments.named_children]
                if arguments is not None
                else [],
            )
        )

    # ---------------------------------------------------- binding

    def _variable_type(self, name: str) -> Tuple[bool, Optional[TypeDescriptor]]:
        for frame in reversed(self._frames):
            if name in frame:
                return True, frame[name]
        for declaration in reversed(self._owners):
            found, field_type = self.registry.find_field(self._owner_type(declaration), name)
            if found:
                return True, field_type
        imports = self.source.imports
        owners = ([imports.static_single[name]] if name in imports.static_single else []) + imports.static_on_demand
        for owner in owners:
            static_owner = self._static_type(owner)
            if static_owner is not None:
                found, field_type = self.registry.find_field(static_owner, name)
                if found:
                    return True, field_type
        return False, None

    def _static_type(self, text: str) -> Optional[TypeDescriptor]:
        """A type named in expression position, e.g. the receiver of a static call."""
        text = _compact(text)
        if not text or not re.fullmatch(r"[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*", text):
            return None
        scope = self._scope()
        qualified = self.registry.qualify(text, scope)
        if qualified is None:
            return None
        imported = qualified in self.source.imports.single.values()
        if not (self.registry.is_declared(qualified) or imported):
            return None
        return self.registry.descriptor(qualified)

    def _receiver_type(self, node: Node) -> Optional[TypeDescriptor]:
        if node.type == "identifier":
            found, variable_type = self._variable_type(_node_text(node))
            if found:
                return variable_type
            return self._static_type(_node_text(node))
        receiver = self._type_of(node)
        if receiver is None and node.type in ("field_access", "scoped_identifier"):
            return self._static_type(_node_text(node))
        return receiver

    def _bind_invocation(self, node: Node) -> Optional[MethodBinding]:
        key = (node.start_byte, node.end_byte)
        if key in self._bindings:
            return self._bindings[key]

        name = _node_text(node.child_by_field_name("name"))
        receiver = node.child_by_field_name("object")
        binding: Optional[MethodBinding] = None
        if receiver is None:
            for declaration in reversed(self._owners):
                binding = self.registry.find_method(self._owner_type(declaration), name)
                if binding is not None:
                    break
            if binding is None:
                binding = self._bind_static_import(name)
        elif receiver.type == "super":
            if self._owners:
                superclass = self._owner_type(self._owners[-1]).superclass
                if superclass is not None:
                    binding = self.registry.find_method(superclass, name)
        else:
            receiver_type = self._receiver_type(receiver)
            if receiver_type is not None and self._has_members(receiver_type):
                binding = self.registry.find_method(receiver_type, name)

        self._bindings[key] = binding
        return binding

    def _bind_static_import(self, name: str) -> Optional[MethodBinding]:
        imports = self.source.imports
        owners = ([imports.static_single[name]] if name in imports.static_single else []) + imports.static_on_demand
        for owner in owners:
            static_owner = self._static_type(owner)
            if static_owner is not None:
                binding = self.registry.find_method(static_owner, name)
                if binding is not None:
                    return binding
        return None

    def _has_members(self, type_: TypeDescriptor) -> bool:
        # opaque types (imported, never declared) have no known members
        if type_.kind in ("array", "type_variable", "wildcard"):
            return True
        return self.registry.is_declared(type_.erasure)

    # ---------------------------------------------------- typing

    def _type_of(self, node: Node) -> Optional[TypeDescriptor]:
        kind = node.type
        text = _node_text(node)
        if kind in _INTEGER_LITERALS:
            return _PRIMITIVES["long" if text[-1:] in ("l", "L") else "int"]
        if kind in _FLOAT_LITERALS:
            return _PRIMITIVES["float" if text[-1:] in ("f", "F") else "double"]
        if kind in ("true", "false"):
            return _PRIMITIVES["boolean"]
        if kind == "character_literal":
            return _PRIMITIVES["char"]
        if kind == "string_literal":
            return self.registry.descriptor(_STRING)
        if kind == "null_literal":
            return NULL_TYPE
        if kind == "parenthesized_expression":
            inner = [child for child in node.named_children if child.type not in _COMMENT_NODES]
            return self._type_of(inner[0]) if inner else None
        if kind == "identifier":
            return self._variable_type(text)[1]
        if kind == "this":
            return self._owner_type(self._owners[-1]) if self._owners else None
        if kind == "field_access":
            return self._field_access_type(node)
        if kind == "method_invocation":
            binding = self._bind_invocation(node)
            return binding.return_type if binding is not None else None
        if kind == "object_creation_expression":
            return self._resolve(node.child_by_field_name("type"))
        if kind == "array_creation_expression":
            return self._array_creation_type(node)
        if kind == "cast_expression":
            return self._resolve(node.child_by_field_name("type"))
        if kind == "class_literal":
            return self._class_literal_type(node)
        if kind == "ternary_expression":
            return self._ternary_type(node)
        if kind == "binary_expression":
            return self._binary_type(node)
        if kind in ("unary_expression", "update_expression"):
            operand = node.child_by_field_name("operand")
            if operand is None and node.named_children:
                operand = node.named_children[0]
            operator = node.child_by_field_name("operator")
            if operator is not None and operator.type == "!":
                return _PRIMITIVES["boolean"]
            return self._type_of(operand) if operand is not None else None
        if kind == "instanceof_expression":
            return _PRIMITIVES["boolean"]
        if kind == "assignment_expression":
            left = node.child_by_field_name("left")
            return self._type_of(left) if left is not None else None
        if kind == "array_access":
            array = node.child_by_field_name("array")
            array_type_ = self._type_of(array) if array is not None else None
            if array_type_ is not None and array_type_.kind == "array":
                return array_type_.component
            return None
        return None

    def _field_access_type(self, node: Node) -> Optional[TypeDescriptor]:
        receiver = node.child_by_field_name("object")
        name = _node_text(node.child_by_field_name("field"))
        if receiver is None:
            return None
        if receiver.type == "this":
            owner = self._type_of(receiver)
        else:
            owner = self._receiver_type(receiver)
        if owner is None or not self._has_members(owner):
            return None
        return self.registry.find_field(owner, name)[1]

    def _array_creation_type(self, node: Node) -> Optional[TypeDescriptor]:
        base = self._resolve(node.child_by_field_name("type"))
        if base is None:
            return None
        dimensions = 0
        for child in node.named_children:
            if child.type == "dimensions_expr":
                dimensions += 1
            elif child.type == "dimensions":
                dimensions += _node_text(child).count("[")
        for _ in range(max(dimensions, 1)):
            base = array_type(base)
        return base

    def _class_literal_type(self, node: Node) -> Optional[TypeDescriptor]:
        named = node.named_children
        if not named:
            return None
        type_text = _compact(_node_text(named[0]))
        if type_text in _BOXED:
            target: Optional[TypeDescriptor] = self.registry.descriptor(_BOXED[type_text])
        else:
            target = self._resolve(named[0])
        if target is None:
            return None
        return self.registry.descriptor("java.lang.Class", (target,))

    def _ternary_type(self, node: Node) -> Optional[TypeDescriptor]:
        branches = [node.child_by_field_name("consequence"), node.child_by_field_name("alternative")]
        types = [self._type_of(branch) for branch in branches if branch is not None]
        if not types or any(type_ is None for type_ in types):
            return None
        operands = [type_ for type_ in types if type_.kind != "null"]
        if not operands:
            return types[0]
        if len(operands) == 1:
            (operand,) = operands
            if operand.kind == "primitive" and len(types) > 1:
                return self.registry.descriptor(_BOXED.get(operand.qualified_name, operand.qualified_name))
            return operand
        first, second = operands
        if first.qualified_name == second.qualified_name:
            return first
        first_name = _UNBOXED.get(first.qualified_name, first.qualified_name)
        second_name = _UNBOXED.get(second.qualified_name, second.qualified_name)
        if first_name == second_name and first_name in _PRIMITIVES:
            return _PRIMITIVES[first_name]
        if first_name in _NUMERIC_RANK and second_name in _NUMERIC_RANK:
            return _PRIMITIVES[max(first_name, second_name, key=_NUMERIC_RANK.__getitem__)]
        # no least upper bound is computed; Object matches no allowance
        return self.registry.descriptor("java.lang.Object")

    def _binary_type(self, node: Node) -> Optional[TypeDescriptor]:
        operator_node = node.child_by_field_name("operator")
        operator = operator_node.type if operator_node is not None else ""
        if operator in _COMPARISON_OPERATORS:
            return _PRIMITIVES["boolean"]
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        left_type = self._type_of(left) if left is not None else None
        right_type = self._type_of(right) if right is not None else None
        if operator == "+" and any(
            type_ is not None and type_.qualified_name == _STRING for type_ in (left_type, right_type)
        ):
            return self.registry.descriptor(_STRING)
        if left_type is None or right_type is None:
            return None
        left_name = _UNBOXED.get(left_type.qualified_name, left_type.qualified_name)
        right_name = _UNBOXED.get(right_type.qualified_name, right_type.qualified_name)
        if operator in ("&", "|", "^") and left_name == right_name == "boolean":
            return _PRIMITIVES["boolean"]
        if operator in ("<<", ">>", ">>>"):
            return _PRIMITIVES["long" if left_name == "long" else "int"]
        if left_name not in _NUMERIC_RANK or right_name not in _NUMERIC_RANK:
            return None
        promoted = max(left_name, right_name, key=_NUMERIC_RANK.__getitem__)
        return _PRIMITIVES[promoted if _NUMERIC_RANK[promoted] >= _NUMERIC_RANK["int"] else "int"]

    # ---------------------------------------------------- arguments

    def _text(self, node: Node) -> str:
        return self.source.text[self.offsets.char(node.start_byte):self.offsets.char(node.end_byte)]

    def _expression(self, node: Node) -> RawArgument:
        kind = node.type
        text = self._text(node)
        if kind in _COMMENT_NODES or kind == "ERROR":
            return SyntaxFragment(text)
        if kind == "ternary_expression":
            consequence = node.child_by_field_name("consequence")
            alternative = node.child_by_field_name("alternative")
            return ConditionalExpression(
                text,
                self._type_of(node),
                then_expression=self._branch(consequence),
                else_expression=self._branch(alternative),
            )
        type_ = self._type_of(node)
        if kind == "string_literal" and not text.startswith('"""'):
            return LiteralExpression(text, type_, literal_kind="string")
        if kind in _INTEGER_LITERALS or kind in _FLOAT_LITERALS:
            return LiteralExpression(text, type_, literal_kind="number")
        if kind in ("true", "false"):
            return LiteralExpression(text, type_, literal_kind="boolean")
        if kind == "method_invocation" and not _is_super_call(node):
            binding = self._bind_invocation(node)
            return MethodCallExpression(
                text,
                type_,
                method_name=_node_text(node.child_by_field_name("name")),
                declaring_type=binding.declaring_type if binding is not None else None,
            )
        if kind in ("identifier", "field_access"):
            return NameExpression(text, type_)
        return OtherExpression(text, type_)

    def _branch(self, node: Optional[Node]) -> Optional[Expression]:
        if node is None:
            return None
        expression = self._expression(node)
        return expression if isinstance(expression, Expression) else None


class SourceBinder:
    """
    Parses Java sources with tree-sitter and produces bound CompilationUnits.

    Types come from the built-in catalogue, then the policy's ``types``, then
    ``.java`` files under classpath directories, then the analyzed sources
    themselves.
    """

    def __init__(self, policy: Optional[Policy] = None) -> None:
        self.policy = policy or Policy()
        self.parser = Parser(JAVA_LANGUAGE)

    def bind(self, sources: Sequence[str], classpath: Sequence[str] = ()) -> List[CompilationUnit]:
        analyzed = [self._parse(path, self._read(path)) for path in sources]
        return self._bind_parsed(analyzed, self._classpath_sources(classpath))

    def bind_source(self, source: str, path: str = "<memory>") -> CompilationUnit:
        """Bind a single in-memory compilation unit."""
        return self._bind_parsed([self._parse(path, source.encode("utf-8"))], [])[0]

    def _read(self, path: str) -> bytes:
        try:
            with open(path, "rb") as handle:
                return handle.read()
        except OSError as exc:
            raise SourceReadError(f"Could not read source file {path}: {exc}") from exc

    def _parse(self, path: str, data: bytes) -> _ParsedSource:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SourceReadError(f"Source file {path} is not valid UTF-8: {exc}") from exc
        root = self.parser.parse(data).root_node
        imports = _import_context(root)
        return _ParsedSource(
            path=path,
            text=text,
            data=data,
            root=root,
            imports=imports,
            declarations=_collect_type_declarations(root, imports, path),
        )

    def _classpath_sources(self, classpath: Sequence[str]) -> List[_ParsedSource]:
        parsed: List[_ParsedSource] = []
        skipped = 0
        for entry in classpath:
            if os.path.isdir(entry):
                for path in discover_sources([entry]):
                    try:
                        parsed.append(self._parse(path, self._read(path)))
                    except SourceReadError as exc:
                        sys.stderr.write(f"[logsafe] Skipping classpath source: {exc}\n")
            elif entry.endswith(".java") and os.path.isfile(entry):
                parsed.append(self._parse(entry, self._read(entry)))
            else:
                skipped += 1
        if skipped:
            sys.stderr.write(
                f"[logsafe] Note: {skipped} classpath entr{'y' if skipped == 1 else 'ies'} "
                "(archives or missing paths) not introspected; declare needed types "
                "under 'types' in a policy file.\n"
            )
        return parsed

    def _bind_parsed(self, analyzed: List[_ParsedSource], support: List[_ParsedSource]) -> List[CompilationUnit]:
        registry = TypeRegistry(self.policy.types)
        for source in support + analyzed:
            for declaration in source.declarations.values():
                registry.declare(declaration)

        units: List[CompilationUnit] = []
        for source in analyzed:
            has_errors = source.root.has_error
            if has_errors:
                sys.stderr.write(
                    f"[logsafe] Warning: syntax errors in {source.path}; analyzing the recovered tree.\n"
                )
            units.append(
                CompilationUnit(
                    path=source.path,
                    source=source.text,
                    invocations=_UnitBinder(registry, source).bind(),
                    has_syntax_errors=has_errors,
                )
            )
        return units


# ============================================================
# ======================= DISCOVERY ==========================
# ============================================================

def read_classpath(path: str) -> List[str]:
    """
    Read a classpath file as written by
    ``mvn dependency:build-classpath -Dmdep.outputFile=cp.txt``.
    """
    try:
        with open(path, "r", encoding="utf-8") as handle:
            content = handle.read()
    except OSError as exc:
        raise SourceReadError(f"Could not read classpath file {path}: {exc}") from exc
    return [entry.strip() for entry in content.split(os.pathsep) if entry.strip()]


def discover_sources(roots: Iterable[str]) -> List[str]:
    """
    Expand source roots into absolute ``.java`` paths, sorted and de-duplicated
    so that violation ids are stable between runs.
    """
    found: Set[str] = set()
    for root in roots:
        if os.path.isfile(root):
            found.add(os.path.abspath(root))
        elif os.path.isdir(root):
            for directory, _, filenames in os.walk(root):
                for filename in filenames:
                    if filename.endswith(".java"):
                        found.add(os.path.abspath(os.path.join(directory, filename)))
        else:
            raise SourceReadError(f"Failed to read sources from {root}: no such file or directory")
    return sorted(found)


# ============================================================
# ====================== ANALYSIS RUN ========================
# ============================================================

@dataclass
class AnalysisResult:
    units: List[CompilationUnit] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)

    @property
    def violation_count(self) -> int:
        return len(self.violations)

    @property
    def exit_status(self) -> int:
        return 1 if self.violations else 0


def analyze_units(
    units: Iterable[CompilationUnit],
    policy: Optional[Policy] = None,
    reporter: Optional[Callable[[Violation], None]] = None,
) -> AnalysisResult:
    """
    Run the call-site visitor over already bound units. Violation ids are
    assigned in unit order, then invocation order, starting at 1.
    """
    visitor = LogCallVisitor(Classifier(policy), ViolationSequence(), reporter)
    result = AnalysisResult()
    for unit in units:
        result.units.append(unit)
        result.violations.extend(visitor.visit(unit))
    return result


def analyze(
    sources: Sequence[str],
    classpath: Sequence[str] = (),
    policy: Optional[Policy] = None,
    reporter: Optional[Callable[[Violation], None]] = None,
) -> AnalysisResult:
    policy = policy or Policy()
    units = SourceBinder(policy).bind(sources, classpath)
    return analyze_units(units, policy, reporter)


# ============================================================
# ==================== VIOLATION OUTPUT ======================
# ============================================================

_LABEL_WIDTH = 12
_VALUE_WIDTH = 88
# two column paddings of one cell each side plus three ASCII rules
TABLE_WIDTH = _LABEL_WIDTH + _VALUE_WIDTH + 4 + 3


def table_console(file: Optional[IO[str]] = None) -> Console:
    """A console at least as wide as the violation table, even when output is not a terminal."""
    width = max(Console(file=file).width, TABLE_WIDTH)
    return Console(file=file, highlight=False, width=width)


def render_violation_table(violation: Violation, console: Console) -> None:
    call_site = violation.call_site
    console.print(Text(f"{violation.id}: {call_site.path}", style="red"))
    table = Table(show_header=False, box=box.ASCII, show_lines=True, padding=(0, 1))
    table.add_column("label", width=_LABEL_WIDTH, min_width=_LABEL_WIDTH, no_wrap=True)
    table.add_column("value", width=_VALUE_WIDTH, overflow="fold")
    table.add_row(Text("Linenumber"), Text(str(call_site.line)))
    table.add_row(Text("Statement"), Text(call_site.statement))
    table.add_row(Text("Rejected"), Text("\n".join(rejected.render() for rejected in violation.rejected)))
    console.print(table)
    console.print()


def violation_to_json_obj(v: Violation) -> Dict[str, Any]:
    """
    Convert a Violation into a JSON-friendly dict with a fixed key order.
    """
    call_site = v.call_site
    return {
        "id": v.id,
        "path": call_site.path,
        "line": call_site.line,
        "level": call_site.level,
        "statement": call_site.statement,
        "rejected": [{"text": r.text, "type": r.type_name} for r in v.rejected],
        "tool": "logsafe",
        "version": __version__,
    }


def emit_violations_json(violations: List[Violation], out: Optional[str] = None) -> None:
    """
    Write the run's violations as one JSON array, in id order. Each object
    carries the call site and a ``rejected`` list of ``{text, type}`` pairs,
    where an unbound argument has the type ``"unresolved"``. Goes to stdout
    unless ``out`` names a file.
    """
    document = json.dumps([violation_to_json_obj(v) for v in violations], indent=2)
    if not out:
        sys.stdout.write(document + "\n")
        return
    with open(out, "w", encoding="utf-8") as handle:
        handle.write(document + "\n")


# ============================================================
# ============================ CLI ===========================
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point for logsafe.
    Intended usage:
      logsafe -cp cp.txt target/generated-sources/delombok/main/java

    Exit status: 0 when no call site was flagged, 1 when at least one was,
    2 when the run could not complete.
    """
    parser = argparse.ArgumentParser(
        prog="logsafe",
        description="Find dangerous slf4j log statements",
    )
    parser.add_argument(
        "-cp",
        "--classpath",
        dest="classpath",
        metavar="CLASSPATH_FILE",
        help='Path to cp.txt from "mvn dependency:build-classpath -Dmdep.outputFile=cp.txt".',
        required=False,
    )
    parser.add_argument(
        "--policy",
        metavar="POLICY_YAML",
        help="YAML file overriding the default whitelist policy.",
        required=False,
    )
    parser.add_argument(
        "--format",
        choices=("table", "json"),
        default="table",
        help="Output format (default: table).",
    )
    parser.add_argument(
        "--out",
        metavar="OUT_JSON",
        help="Write violations as JSON to this file instead of stdout.",
        required=False,
    )
    parser.add_argument(
        "sources",
        nargs="+",
        help="Java source files or directories (usually the de-lombok'd sources).",
    )

    args = parser.parse_args(argv)

    sys.stderr.write(f"[logsafe] Using classpath {args.classpath}\n")
    sys.stderr.write(f"[logsafe] Using sources {args.sources}\n")

    try:
        policy = load_policy(args.policy)
        classpath = read_classpath(args.classpath) if args.classpath else []
        sources = discover_sources(args.sources)

        if args.format == "json" or args.out:
            result = analyze(sources, classpath, policy)
            emit_violations_json(result.violations, out=args.out)
        else:
            console = table_console()
            result = analyze(
                sources,
                classpath,
                policy,
                reporter=lambda violation: render_violation_table(violation, console),
            )
    except LogsafeError as exc:
        sys.stderr.write(f"[logsafe] Error: {exc}\n")
        return 2

    sys.stderr.write(
        f"[logsafe] {result.violation_count} violation(s) in {len(result.units)} source file(s).\n"
    )
    return result.exit_status


if __name__ == "__main__":
    sys.exit(main())
