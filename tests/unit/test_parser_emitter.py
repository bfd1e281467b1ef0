"""
Unit tests for the tree-sitter GLSL parser and the GLSL emitter.

Tests:
- Top-level statement kinds (declarations, functions, structs, directives)
- Qualifier capture (in, out, uniform)
- Precision and preprocessor lifting
- Syntax errors with locations
- Emitter precedence when expressions are spliced
"""

import pytest
from src.glsl_graph.codegen import GLSLEmitter, generate
from src.glsl_graph.errors import GLSLSyntaxError
from src.glsl_graph.parser import GLSLParser
from src.glsl_graph.parser import ast_nodes as AST


@pytest.fixture
def parser():
    """Create GLSL parser."""
    return GLSLParser()


@pytest.fixture
def emitter():
    """Create GLSL emitter."""
    return GLSLEmitter()


def squash(text):
    """Collapse whitespace so layout does not matter."""
    return ' '.join(text.split())


# ============================================================================
# 1. Top-level Statements
# ============================================================================

def test_parse_declarations_and_function(parser):
    program = parser.parse("""
    uniform float time;
    in vec2 vUv;
    out vec4 color;

    void main() {
        color = vec4(vUv, time, 1.0);
    }
    """)
    kinds = [stmt.__class__.__name__ for stmt in program.statements]
    assert kinds == ['Declaration', 'Declaration', 'Declaration', 'FunctionDefinition']

    uniform, varying, out = program.statements[:3]
    assert uniform.type.qualifiers == ['uniform']
    assert uniform.type.name == 'float'
    assert uniform.declarators[0].name == 'time'
    assert varying.type.qualifiers == ['in']
    assert out.type.qualifiers == ['out']
    assert program.statements[3].prototype.name == 'main'


def test_parse_multiple_declarators(parser):
    program = parser.parse("uniform float a, b;")
    declaration = program.statements[0]
    assert [d.name for d in declaration.declarators] == ['a', 'b']


def test_parse_struct_definition(parser):
    program = parser.parse("""
    struct Light {
        vec3 color;
        float intensity;
    };
    """)
    struct = program.statements[0]
    assert isinstance(struct, AST.StructDefinition)
    assert struct.name == 'Light'
    assert [f.declarators[0].name for f in struct.fields] == ['color', 'intensity']


def test_parse_function_prototype(parser):
    program = parser.parse("float shade(vec3 n);")
    declaration = program.statements[0]
    assert isinstance(declaration, AST.FunctionDeclaration)
    assert declaration.prototype.name == 'shade'
    assert declaration.prototype.parameters[0].name == 'n'


def test_version_and_precision_lifted(parser):
    program = parser.parse("""#version 300 es
precision highp float;
precision mediump int;
#define USE_MAP
out vec4 color;
""")
    version, float_precision, int_precision, define, out = program.statements
    assert isinstance(version, AST.Preprocessor) and version.line == '#version 300 es'
    assert isinstance(float_precision, AST.Precision)
    assert (float_precision.qualifier, float_precision.type_name) == ('highp', 'float')
    assert (int_precision.qualifier, int_precision.type_name) == ('mediump', 'int')
    assert define.line == '#define USE_MAP'
    assert isinstance(out, AST.Declaration)


def test_comments_ignored(parser):
    program = parser.parse("""
    // leading comment
    uniform float a; /* trailing */
    """)
    assert len(program.statements) == 1


def test_parse_expression(parser):
    expression = parser.parse_expression("texture(map, vUv).rgb")
    assert isinstance(expression, AST.FieldExpression)
    assert expression.field == 'rgb'
    assert isinstance(expression.argument, AST.CallExpression)
    assert expression.argument.callee.name == 'texture'


def test_parse_statement(parser):
    statement = parser.parse_statement("vec4 c = vec4(1.0);")
    assert isinstance(statement, AST.Declaration)
    assert statement.declarators[0].name == 'c'


def test_product_of_identifiers_is_expression(parser):
    expression = parser.parse_expression("x * y")
    assert isinstance(expression, AST.BinaryExpression)
    assert expression.operator == '*'
    assert expression.left.name == 'x'
    assert expression.right.name == 'y'


def test_product_statement_is_not_declaration(parser):
    statement = parser.parse_statement("a * b;")
    assert isinstance(statement, AST.ExpressionStatement)
    assert isinstance(statement.expression, AST.BinaryExpression)
    assert generate(statement).strip() == 'a * b;'


def test_product_statement_in_function_body(parser):
    program = parser.parse("void f() { a * b; }")
    body = program.statements[0].body.statements
    assert isinstance(body[0], AST.ExpressionStatement)
    assert 'a * b;' in squash(generate(program))


# ============================================================================
# 2. Syntax Errors
# ============================================================================

def test_syntax_error_has_location(parser):
    with pytest.raises(GLSLSyntaxError) as info:
        parser.parse("void main() {\n    float a = ;\n}")
    assert info.value.location is not None
    assert info.value.location[0] == 1
    assert 'line 2' in str(info.value)


def test_parse_expression_rejects_statement(parser):
    with pytest.raises(GLSLSyntaxError):
        parser.parse_expression("float a = 1.0")


# ============================================================================
# 3. Emitter
# ============================================================================

def test_round_trip_function(parser, emitter):
    glsl = """
    out vec4 color;
    void main() {
        vec3 c = vec3(0.5);
        if (c.x > 0.25) {
            c *= 2.0;
        } else {
            c = vec3(0.0);
        }
        for (int i = 0; i < 4; i++) {
            c += 0.1;
        }
        color = vec4(c, 1.0);
    }
    """
    output = emitter.emit(parser.parse(glsl))
    assert 'out vec4 color;' in output
    assert 'void main() {' in output
    assert 'vec3 c = vec3(0.5);' in output
    assert 'if (c.x > 0.25) {' in output
    assert 'c *= 2.0;' in output
    assert 'for (int i = 0; i < 4; i++)' in output
    assert 'color = vec4(c, 1.0);' in output


def test_round_trip_is_stable(parser):
    glsl = """
    uniform float time;
    float wave(float x) {
        return sin(x * time);
    }
    """
    once = generate(parser.parse(glsl))
    twice = generate(parser.parse(once))
    assert once == twice


def test_emit_struct_and_precision(parser, emitter):
    output = emitter.emit(parser.parse("""
    precision highp float;
    struct Light { vec3 color; };
    """))
    assert 'precision highp float;' in output
    assert squash('struct Light { vec3 color; };') in squash(output)


def test_spliced_expression_gets_parentheses(parser):
    """A looser-binding filler spliced into a tighter context is wrapped."""
    expression = parser.parse_expression("a * 2.0")
    expression.left = parser.parse_expression("b + c")
    assert generate(expression) == '(b + c) * 2.0'


def test_tighter_filler_not_wrapped(parser):
    expression = parser.parse_expression("a + 2.0")
    expression.left = parser.parse_expression("b * c")
    assert generate(expression) == 'b * c + 2.0'


def test_right_operand_of_subtraction_wrapped(parser):
    expression = parser.parse_expression("a - d")
    expression.right = parser.parse_expression("b - c")
    assert generate(expression) == 'a - (b - c)'


def test_explicit_parentheses_kept(parser):
    assert generate(parser.parse_expression("(a + b)")) == '(a + b)'


def test_postfix_and_prefix_unary(parser):
    assert generate(parser.parse_expression("i++")) == 'i++'
    assert generate(parser.parse_expression("-x")) == '-x'


def test_ternary(parser):
    assert generate(parser.parse_expression("a > b ? a : b")) == 'a > b ? a : b'
