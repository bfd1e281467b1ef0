"""
Mutable GLSL syntax tree.

The GLSLParser converts the tree-sitter concrete syntax tree into these
nodes. Unlike the tree-sitter tree they can be edited in place, which is
what slot splicing needs: a strategy records where a hole is, and the
graph compiler later writes a filler expression into it.

Design principles:
- Plain mutable dataclasses, compared by identity
- Children are discovered from dataclass fields (single node or list)
- No byte offsets; everything is re-printed by GLSLEmitter
- Constructs the builder does not understand survive as Raw* nodes

Traversal:
    walk(tree, {'Identifier': callback}) calls callback(path) for every
    Identifier, pre-order. The callback returns a VisitAction.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Tuple


@dataclass(eq=False)
class SyntaxNode:
    """
    Base class for all syntax tree nodes.

    Attributes:
        location: (line, column) of the node in its source, 0-based
    """
    location: Optional[tuple] = field(default=None, repr=False)

    def accept(self, visitor):
        """Visitor pattern support."""
        method_name = f'visit_{self.__class__.__name__}'
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


# ============================================================================
# Expressions
# ============================================================================

@dataclass(eq=False)
class Identifier(SyntaxNode):
    """
    Variable, function or type reference.

    do_not_descope marks references that an entry-point rewrite turned into
    function locals; the renamer leaves them alone.
    """
    name: str = None
    do_not_descope: bool = False


@dataclass(eq=False)
class Literal(SyntaxNode):
    """Number or boolean literal, kept as source text (1.0, 2u, true)."""
    value: str = None


@dataclass(eq=False)
class BinaryExpression(SyntaxNode):
    operator: str = None
    left: SyntaxNode = None
    right: SyntaxNode = None


@dataclass(eq=False)
class UnaryExpression(SyntaxNode):
    """Prefix (-x, !x, ++i) or postfix (i++) operator."""
    operator: str = None
    operand: SyntaxNode = None
    postfix: bool = False


@dataclass(eq=False)
class AssignmentExpression(SyntaxNode):
    operator: str = None  # "=", "+=", ...
    left: SyntaxNode = None
    right: SyntaxNode = None


@dataclass(eq=False)
class ConditionalExpression(SyntaxNode):
    condition: SyntaxNode = None
    consequence: SyntaxNode = None
    alternative: SyntaxNode = None


@dataclass(eq=False)
class CallExpression(SyntaxNode):
    """
    Function call or type constructor.

    Examples:
        texture(map, vUv), vec4(1.0), obj.length()
    """
    callee: SyntaxNode = None
    arguments: List[SyntaxNode] = field(default_factory=list)


@dataclass(eq=False)
class FieldExpression(SyntaxNode):
    """Swizzle or struct member access (color.rgb, light.position)."""
    argument: SyntaxNode = None
    field: str = None


@dataclass(eq=False)
class SubscriptExpression(SyntaxNode):
    argument: SyntaxNode = None
    index: SyntaxNode = None


@dataclass(eq=False)
class ParenthesizedExpression(SyntaxNode):
    expression: SyntaxNode = None


@dataclass(eq=False)
class SequenceExpression(SyntaxNode):
    """Comma operator (a, b)."""
    expressions: List[SyntaxNode] = field(default_factory=list)


@dataclass(eq=False)
class InitializerList(SyntaxNode):
    elements: List[SyntaxNode] = field(default_factory=list)


@dataclass(eq=False)
class RawExpression(SyntaxNode):
    """Expression the builder passed through untouched."""
    text: str = None


# ============================================================================
# Declarations
# ============================================================================

@dataclass(eq=False)
class FullType(SyntaxNode):
    """
    Type specifier with its qualifiers.

    Examples:
        vec4, uniform sampler2D, highp float, layout(location = 0) out vec4
    """
    qualifiers: List[str] = field(default_factory=list)
    name: str = None
    struct: Optional['StructDefinition'] = None
    array_sizes: List[Optional[SyntaxNode]] = field(default_factory=list)


@dataclass(eq=False)
class Declarator(SyntaxNode):
    """One declared name of a declaration: `x`, `x = 1.0`, `lights[4]`."""
    name: str = None
    array_sizes: List[Optional[SyntaxNode]] = field(default_factory=list)
    initializer: Optional[SyntaxNode] = None


@dataclass(eq=False)
class Declaration(SyntaxNode):
    """
    Variable declaration, local or global.

    Examples:
        uniform float time;
        in vec2 vUv, vUv2;
        vec3 color = vec3(1.0);
    """
    type: FullType = None
    declarators: List[Declarator] = field(default_factory=list)


@dataclass(eq=False)
class StructDefinition(SyntaxNode):
    """
    Struct type definition.

    Fields are Declarations so they print and rename the same way.
    """
    name: Optional[str] = None
    fields: List[Declaration] = field(default_factory=list)


@dataclass(eq=False)
class InterfaceBlock(SyntaxNode):
    """
    Uniform/in/out block.

    Examples:
        uniform Scene { mat4 viewProjection; };
        uniform Material { vec4 color; } material;
    """
    qualifiers: List[str] = field(default_factory=list)
    name: str = None
    fields: List[Declaration] = field(default_factory=list)
    instance: Optional[Declarator] = None


@dataclass(eq=False)
class Parameter(SyntaxNode):
    type: FullType = None
    name: Optional[str] = None
    array_sizes: List[Optional[SyntaxNode]] = field(default_factory=list)


@dataclass(eq=False)
class FunctionPrototype(SyntaxNode):
    return_type: FullType = None
    name: str = None
    parameters: List[Parameter] = field(default_factory=list)


@dataclass(eq=False)
class FunctionDefinition(SyntaxNode):
    prototype: FunctionPrototype = None
    body: 'CompoundStatement' = None


@dataclass(eq=False)
class FunctionDeclaration(SyntaxNode):
    """Forward declaration: `float noise(vec2 p);`"""
    prototype: FunctionPrototype = None


# ============================================================================
# Statements
# ============================================================================

@dataclass(eq=False)
class CompoundStatement(SyntaxNode):
    statements: List[SyntaxNode] = field(default_factory=list)


@dataclass(eq=False)
class ExpressionStatement(SyntaxNode):
    """Expression used as a statement. expression is None for `;`."""
    expression: Optional[SyntaxNode] = None


@dataclass(eq=False)
class ReturnStatement(SyntaxNode):
    value: Optional[SyntaxNode] = None


@dataclass(eq=False)
class IfStatement(SyntaxNode):
    condition: SyntaxNode = None
    consequence: SyntaxNode = None
    alternative: Optional[SyntaxNode] = None


@dataclass(eq=False)
class ForStatement(SyntaxNode):
    """
    For loop.

    initializer is a Declaration or an expression (or None).
    """
    initializer: Optional[SyntaxNode] = None
    condition: Optional[SyntaxNode] = None
    update: Optional[SyntaxNode] = None
    body: SyntaxNode = None


@dataclass(eq=False)
class WhileStatement(SyntaxNode):
    condition: SyntaxNode = None
    body: SyntaxNode = None


@dataclass(eq=False)
class DoStatement(SyntaxNode):
    body: SyntaxNode = None
    condition: SyntaxNode = None


@dataclass(eq=False)
class JumpStatement(SyntaxNode):
    """break, continue or discard."""
    keyword: str = None


@dataclass(eq=False)
class CaseStatement(SyntaxNode):
    """`case value:` or `default:` (value is None) followed by its statements."""
    value: Optional[SyntaxNode] = None
    statements: List[SyntaxNode] = field(default_factory=list)


@dataclass(eq=False)
class SwitchStatement(SyntaxNode):
    condition: SyntaxNode = None
    cases: List[CaseStatement] = field(default_factory=list)


@dataclass(eq=False)
class RawStatement(SyntaxNode):
    """Statement the builder passed through untouched."""
    text: str = None


# ============================================================================
# Top-Level
# ============================================================================

@dataclass(eq=False)
class Preprocessor(SyntaxNode):
    """Preprocessor directive, kept as its full source line (#version 300 es)."""
    line: str = None


@dataclass(eq=False)
class Precision(SyntaxNode):
    """Default precision statement: `precision highp float;`"""
    qualifier: str = None
    type_name: str = None


@dataclass(eq=False)
class Program(SyntaxNode):
    """Root node: the ordered top-level statements of one shader."""
    statements: List[SyntaxNode] = field(default_factory=list)


# ============================================================================
# Traversal
# ============================================================================

class VisitAction(Enum):
    """What a visitor callback asks the walk to do next."""
    CONTINUE = 'continue'
    SKIP = 'skip'      # do not descend into this node
    STOP = 'stop'      # abort the whole walk


class Path:
    """
    Location of a node during traversal.

    Attributes:
        node: The visited node
        parent: Node holding it (None for the root)
        key: Field name on parent holding the node
        index: Position when that field is a list, else None
        parent_path: Path of the parent
    """

    def __init__(self, node: SyntaxNode, parent: Optional[SyntaxNode] = None,
                 key: Optional[str] = None, index: Optional[int] = None,
                 parent_path: Optional['Path'] = None):
        self.node = node
        self.parent = parent
        self.key = key
        self.index = index
        self.parent_path = parent_path

    def find_parent(self, predicate: Callable[['Path'], bool]) -> Optional['Path']:
        """Return the nearest ancestor path matching predicate."""
        path = self.parent_path
        while path is not None:
            if predicate(path):
                return path
            path = path.parent_path
        return None

    def replace(self, new_node: SyntaxNode):
        """
        Overwrite this node in its parent.

        List containers are searched by identity, so the replacement stays
        correct when earlier siblings were inserted or removed.
        """
        if self.parent is None:
            raise ValueError("Cannot replace the root of a walk")
        container = getattr(self.parent, self.key)
        if isinstance(container, list):
            for i, item in enumerate(container):
                if item is self.node:
                    container[i] = new_node
                    break
            else:
                raise ValueError(f"{self.node!r} is no longer in {self.key}")
        else:
            setattr(self.parent, self.key, new_node)
        self.node = new_node

    def remove(self):
        """Drop this node from its parent's list."""
        container = getattr(self.parent, self.key)
        if not isinstance(container, list):
            raise ValueError(f"Cannot remove node from scalar field {self.key}")
        for i, item in enumerate(container):
            if item is self.node:
                del container[i]
                return
        raise ValueError(f"{self.node!r} is no longer in {self.key}")

    def __repr__(self):
        return f"Path({self.node.__class__.__name__}, key={self.key!r}, index={self.index!r})"


def iter_children(node: SyntaxNode) -> Iterator[Tuple[str, Optional[int], SyntaxNode]]:
    """Yield (key, index, child) for every direct child node."""
    for f in fields(node):
        if f.name == 'location':
            continue
        value = getattr(node, f.name)
        if isinstance(value, SyntaxNode):
            yield f.name, None, value
        elif isinstance(value, list):
            for i, item in enumerate(value):
                if isinstance(item, SyntaxNode):
                    yield f.name, i, item


Visitors = Dict[str, Callable[[Path], Optional[VisitAction]]]


def walk(root: SyntaxNode, visitors: Visitors) -> bool:
    """
    Pre-order traversal calling visitors keyed by node class name.

    A callback returning None is treated as CONTINUE. If a callback
    replaces its node, the walk does not descend into the replacement.

    Returns:
        False if a callback stopped the walk, True otherwise
    """
    return _walk(Path(root), visitors)


def _walk(path: Path, visitors: Visitors) -> bool:
    callback = visitors.get(path.node.__class__.__name__)
    original = path.node
    if callback is not None:
        action = callback(path)
        if action is VisitAction.STOP:
            return False
        if action is VisitAction.SKIP or path.node is not original:
            return True
    # Snapshot so callbacks may edit sibling lists
    for key, index, child in list(iter_children(original)):
        if not _walk(Path(child, original, key, index, path), visitors):
            return False
    return True


def iter_paths(root: SyntaxNode, parent_path: Optional[Path] = None) -> Iterator[Path]:
    """Yield a Path for every node under root, pre-order, root included."""
    stack = [Path(root, parent_path=parent_path)]
    while stack:
        path = stack.pop()
        yield path
        children = list(iter_children(path.node))
        for key, index, child in reversed(children):
            stack.append(Path(child, path.node, key, index, path))


def find_all(root: SyntaxNode, node_class) -> List[SyntaxNode]:
    """Collect every node of the given class (or classes) under root."""
    return [p.node for p in iter_paths(root) if isinstance(p.node, node_class)]
