"""
Entry-point rewrites.

A node's `main` writes its result into a global (`out vec4 color` or
gl_Position). To inline the node into a downstream expression, main is
turned into a function that returns that result instead:

    out vec4 color;                     vec4 main() {
    void main() {                 ->        vec4 frogOut;
        color = vec4(1.0);                  frogOut = vec4(1.0);
    }                                       return frogOut;
                                        }

The renamer later turns `main` into `main_<id>`. References to the local
are flagged do_not_descope so they are not suffixed.
"""

import logging
from typing import Callable, List, Optional

from ..errors import NoOutDeclarationFound, NoPositionAssignmentFound, NormalizationError
from ..parser import ast_nodes as AST
from .hygiene import NameMap

logger = logging.getLogger(__name__)

RETURN_VARIABLE = 'frogOut'
FRAGMENT_COLOR = 'fragmentColor'
DEFAULT_VERSION = '#version 300 es'


# ============================================================================
# Helpers
# ============================================================================

def make_declaration(type_name: str, name: str, initializer: Optional[AST.SyntaxNode] = None,
                     qualifiers: Optional[List[str]] = None) -> AST.Declaration:
    return AST.Declaration(
        type=AST.FullType(qualifiers=list(qualifiers or []), name=type_name),
        declarators=[AST.Declarator(name=name, initializer=initializer)],
    )


def local_reference(name: str) -> AST.Identifier:
    return AST.Identifier(name=name, do_not_descope=True)


def find_function(program: AST.Program, name: str) -> Optional[AST.FunctionDefinition]:
    for stmt in program.statements:
        if isinstance(stmt, AST.FunctionDefinition) and stmt.prototype.name == name:
            return stmt
    return None


def find_main(program: AST.Program, name: str = 'main') -> AST.FunctionDefinition:
    main = find_function(program, name)
    if main is None:
        raise NormalizationError(f"No {name} function found")
    return main


def _rename_references(root: AST.SyntaxNode, old: str, new: str):
    def rename(path):
        if path.node.name == old:
            path.node.name = new
            path.node.do_not_descope = True

    AST.walk(root, {'Identifier': rename})


def _return_bare(main: AST.FunctionDefinition, name: str):
    """Turn every `return;` inside main into `return <name>;`."""
    def fill(path):
        if path.node.value is None:
            path.node.value = local_reference(name)

    AST.walk(main.body, {'ReturnStatement': fill})


def _make_returning(main: AST.FunctionDefinition, return_type: str, name: str):
    main.prototype.return_type = AST.FullType(name=return_type)
    main.body.statements.insert(0, make_declaration(return_type, name))
    _return_bare(main, name)
    main.body.statements.append(AST.ReturnStatement(value=local_reference(name)))


# ============================================================================
# Fragment
# ============================================================================

def find_out_declaration(program: AST.Program) -> Optional[AST.Declaration]:
    for stmt in program.statements:
        if (isinstance(stmt, AST.Declaration) and 'out' in stmt.type.qualifiers
                and stmt.type.name == 'vec4' and stmt.declarators):
            return stmt
    return None


def normalize_main(program: AST.Program, name: str = RETURN_VARIABLE,
                   names: Optional[NameMap] = None) -> str:
    """
    Convert a GLSL 3 fragment main into a vec4-returning function.

    Args:
        program: Node tree, modified in place
        name: Local variable that replaces the out variable
        names: Records original -> local for later strategy lookups

    Returns:
        The original out variable name

    Raises:
        NoOutDeclarationFound: no top-level `out vec4` declaration
    """
    declaration = find_out_declaration(program)
    if declaration is None:
        raise NoOutDeclarationFound("No top-level 'out vec4' declaration found in fragment shader")

    out_name = declaration.declarators[0].name
    if len(declaration.declarators) > 1:
        del declaration.declarators[0]
    else:
        program.statements.remove(declaration)

    main = find_main(program)
    _rename_references(program, out_name, name)
    _make_returning(main, 'vec4', name)

    if names is not None:
        names.add(out_name, name)
    logger.debug(f"Converted main to return '{out_name}' as {name}")
    return out_name


# ============================================================================
# Vertex
# ============================================================================

def find_position_assignment(main: AST.FunctionDefinition) -> Optional[AST.ExpressionStatement]:
    """Top-level `gl_Position = ...;` statement of main."""
    for stmt in main.body.statements:
        expression = getattr(stmt, 'expression', None)
        if (isinstance(stmt, AST.ExpressionStatement)
                and isinstance(expression, AST.AssignmentExpression)
                and isinstance(expression.left, AST.Identifier)
                and expression.left.name == 'gl_Position'):
            return stmt
    return None


def normalize_vertex_main(program: AST.Program, name: str = RETURN_VARIABLE,
                          names: Optional[NameMap] = None) -> None:
    """
    Make main return the vec4 it assigns to gl_Position.

    Every gl_Position reference in main becomes the local, so an assignment
    strategy on gl_Position still finds its target.
    """
    main = find_main(program)
    if find_position_assignment(main) is None:
        raise NoPositionAssignmentFound("No gl_Position assignment found in main")
    _rename_references(main.body, 'gl_Position', name)
    _make_returning(main, 'vec4', name)
    if names is not None:
        names.add('gl_Position', name)


def convert_vertex_main(program: AST.Program, return_type: str,
                        generate_right: Callable[[AST.AssignmentExpression], AST.SyntaxNode],
                        function_name: str = 'main', name: str = RETURN_VARIABLE) -> None:
    """
    Replace main's `gl_Position = ...;` with `<return_type> frogOut = <right>;`
    and return frogOut.

    Raises:
        NoPositionAssignmentFound: main has no top-level gl_Position assignment
    """
    main = find_main(program, function_name)
    assign = find_position_assignment(main)
    if assign is None:
        raise NoPositionAssignmentFound(f"No gl_Position assignment found in {function_name}")

    right = generate_right(assign.expression)
    statements = main.body.statements
    statements[statements.index(assign)] = make_declaration(return_type, name, right)
    main.prototype.return_type = AST.FullType(name=return_type)
    statements.append(AST.ReturnStatement(value=local_reference(name)))


def return_position(program: AST.Program, function_name: str = 'main'):
    """main returns the vec4 assigned to gl_Position."""
    convert_vertex_main(program, 'vec4', lambda assign: assign.right, function_name)


def _vec3_inside_vec4(assign: AST.AssignmentExpression) -> AST.SyntaxNode:
    found = None

    def match(path):
        nonlocal found
        node = path.node
        if (isinstance(node.callee, AST.Identifier) and node.callee.name == 'vec4'
                and len(node.arguments) == 2
                and isinstance(node.arguments[1], AST.Literal)
                and node.arguments[1].value.startswith('1.')):
            found = node.arguments[0]

    AST.walk(assign.right, {'CallExpression': match})
    if found is None:
        raise NoPositionAssignmentFound("Could not find a vec4(position, 1.0) to convert to return")
    return found


def return_position_vec3_right(program: AST.Program, function_name: str = 'main'):
    """
    main returns the vec3 wrapped by the last `vec4(x, 1.0)` in the
    gl_Position assignment.
    """
    convert_vertex_main(program, 'vec3', _vec3_inside_vec4, function_name)


def return_position_hard_coded(program: AST.Program, return_type: str = 'vec3',
                               expression: str = 'transformed', function_name: str = 'main'):
    """main returns a fixed expression (engine shaders expose `transformed`)."""
    convert_vertex_main(program, return_type, lambda assign: local_reference(expression), function_name)


# ============================================================================
# GLSL 1 -> GLSL 3
# ============================================================================

def upgrade_to_glsl3(program: AST.Program, stage: Optional[str]) -> None:
    """
    Rewrite GLSL 1 (WebGL1) syntax to GLSL 3 in place.

    - fragment: gl_FragColor -> fragmentColor, declared `out vec4`
    - texture2D(...) -> texture(...)
    - attribute -> in; varying -> in (fragment) or out (vertex)
    - any #version line replaced by #version 300 es
    """
    def rename_builtin(path):
        if path.node.name == 'gl_FragColor':
            path.node.name = FRAGMENT_COLOR
        elif path.node.name == 'texture2D' and isinstance(path.parent, AST.CallExpression) \
                and path.key == 'callee':
            path.node.name = 'texture'

    AST.walk(program, {'Identifier': rename_builtin})

    varying = 'out' if stage == 'vertex' else 'in'
    for stmt in program.statements:
        if isinstance(stmt, AST.Declaration):
            stmt.type.qualifiers = [
                'in' if q == 'attribute' else varying if q == 'varying' else q
                for q in stmt.type.qualifiers
            ]

    head = 0
    while head < len(program.statements) and \
            isinstance(program.statements[head], (AST.Preprocessor, AST.Precision)):
        head += 1
    if stage == 'fragment':
        program.statements.insert(head, make_declaration('vec4', FRAGMENT_COLOR, qualifiers=['out']))

    program.statements[:] = [
        s for s in program.statements
        if not (isinstance(s, AST.Preprocessor) and s.line.split()[0] == '#version')
    ]
    program.statements.insert(0, AST.Preprocessor(line=DEFAULT_VERSION))
    logger.debug(f"Upgraded {stage} shader to GLSL 3")
