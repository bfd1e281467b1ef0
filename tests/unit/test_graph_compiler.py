"""
Unit tests for the graph compiler.

Tests:
- End-to-end fragment and vertex linking
- Single visit per node on fan-out
- Section ordering and in-deduplication across nodes
- Binary, expression and data nodes
- Vertex orphans linked through the Output's main
- Structural and node-level errors
"""

import pytest
from src.glsl_graph.core.builders import GraphBuilder, MAIN_STATEMENTS_SLOT
from src.glsl_graph.core.engine import core_engine
from src.glsl_graph.core.graph import Node
from src.glsl_graph.core.graph_compiler import GraphCompiler, compile_graph, generate_glsl
from src.glsl_graph.core.strategy import named_attribute_strategy
from src.glsl_graph.engines import three_engine
from src.glsl_graph.errors import (
    GLSLSyntaxError, GraphCycleError, MissingInputSlotError, NoHandlerError,
    NoOutDeclarationFound, NodeCompileError, NoOutputNodeError, ShaderGraphError,
)


def squash(text):
    return ' '.join(text.split())


@pytest.fixture
def builder():
    return GraphBuilder()


@pytest.fixture
def engine():
    """Core handlers, keeping the common varyings and attributes."""
    return core_engine(preserve={'vUv', 'position'})


IMAGE = """#version 300 es
precision highp float;
uniform sampler2D image;
in vec2 vUv;
out vec4 color;
void main() {
    color = texture(image, vUv) * 0.5;
}
"""

GRADIENT = """#version 300 es
precision mediump float;
uniform float time;
in vec2 vUv;
out vec4 color;
void main() {
    color = vec4(vUv, time, 1.0);
}
"""

BLEND = """#version 300 es
precision highp float;
uniform sampler2D a, b;
in vec2 vUv;
out vec4 color;
void main() {
    color = mix(texture(a, vUv), texture(b, vUv), 0.5);
}
"""

VERTEX = """#version 300 es
in vec3 position;
uniform mat4 projectionMatrix;
uniform mat4 modelViewMatrix;
out vec2 vUv;
void main() {
    vUv = position.xy;
    gl_Position = projectionMatrix * modelViewMatrix * vec4(position, 1.0);
}
"""


def fragment_source(builder, engine, **kwargs):
    return compile_graph(builder.graph, engine, stages=['fragment'], **kwargs).fragment.source


# ============================================================================
# 1. End-to-end
# ============================================================================

def test_single_shader_fragment(builder):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    builder.connect(image, output, 'color')

    source = squash(fragment_source(builder, three_engine()))
    assert source == squash("""
        #version 300 es
        precision highp float;
        in vec2 vUv;
        out vec4 frogFragOut;
        uniform sampler2D image;
        vec4 main_2() {
            vec4 frogOut;
            frogOut = texture(image, vUv) * 0.5;
            return frogOut;
        }
        vec4 main_1() {
            vec4 frogOut;
            frogOut = main_2();
            return frogOut;
        }
        void main() {
            frogFragOut = main_1();
        }
    """)


def test_glsl1_source_upgraded(builder):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', """
        varying vec2 vUv;
        uniform sampler2D image;
        void main() {
            gl_FragColor = texture2D(image, vUv);
        }
    """, stage='fragment', version=2)
    builder.connect(image, output, 'color')

    source = squash(fragment_source(builder, three_engine()))
    assert source.startswith('#version 300 es precision highp float; in vec2 vUv; out vec4 frogFragOut;')
    assert 'vec4 main_2() { vec4 frogOut; frogOut = texture(image, vUv); return frogOut; }' in source
    assert 'gl_FragColor' not in source
    assert 'fragmentColor' not in source


def test_chained_shaders(builder, engine):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    builder.connect(gradient, image, 'texture2d_0')
    builder.connect(image, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'frogOut = main_3() * 0.5;' in source
    assert 'uniform float time_3;' in source
    assert 'frogOut = vec4(vUv, time_3, 1.0);' in source
    # upstream functions come first
    assert source.index('vec4 main_3()') < source.index('vec4 main_2()') < source.index('vec4 main_1()')
    # one `in` per varying, highest precision wins
    assert source.count('in vec2 vUv;') == 1
    assert 'precision highp float;' in source
    assert 'mediump' not in source


def test_unfilled_uniform_stays_declared(builder, engine):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    builder.connect(gradient, image, 'texture2d_0')
    builder.connect(image, output, 'color')

    source = squash(fragment_source(builder, engine))
    # texture slot filled, sampler uniform still declared for the engine
    assert 'uniform sampler2D image_2;' in source


def test_no_duplicate_top_level_names(builder, engine):
    output = builder.output_node('fragment')
    left = builder.source_node('Left', GRADIENT, stage='fragment')
    right = builder.source_node('Right', GRADIENT, stage='fragment')
    add = builder.binary_node('+')
    builder.connect(left, add, 'a')
    builder.connect(right, add, 'b')
    builder.connect(add, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'uniform float time_2, time_3;' in source
    assert 'frogOut = (main_2() + main_3());' in source


def test_fan_out_compiles_node_once(builder, engine):
    output = builder.output_node('fragment')
    blend = builder.source_node('Blend', BLEND, stage='fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    builder.connect(gradient, blend, 'texture2d_0')
    builder.connect(gradient, blend, 'texture2d_1')
    builder.connect(blend, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert source.count('vec4 main_3()') == 1
    assert 'frogOut = mix(main_3(), main_3(), 0.5);' in source
    assert source.count('uniform float time_3') == 1


def test_compile_is_deterministic(builder, engine):
    output = builder.output_node('fragment')
    blend = builder.source_node('Blend', BLEND, stage='fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    builder.connect(gradient, blend, 'texture2d_0')
    builder.connect(blend, output, 'color')

    first = fragment_source(builder, engine)
    second = fragment_source(builder, engine)
    assert first == second


def test_compile_does_not_touch_graph(builder, engine):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    builder.connect(image, output, 'color')
    compile_graph(builder.graph, engine, stages=['fragment'])
    assert image.source == IMAGE


def test_defined_macro_not_renamed(builder, engine):
    output = builder.output_node('fragment')
    shader = builder.source_node('Scaled', """
#define SCALE 2.0
out vec4 color;
void main() { color = vec4(SCALE); }
""", stage='fragment', preprocess=False)
    builder.connect(shader, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert '#define SCALE 2.0' in source
    assert 'frogOut = vec4(SCALE);' in source
    assert 'SCALE_' not in source


# ============================================================================
# 2. Expression, Binary and Data Nodes
# ============================================================================

def test_data_nodes_spliced_into_binary(builder, engine):
    output = builder.output_node('fragment')
    color = builder.data_node('vector4', ['1', '0', '0', '1'])
    half = builder.data_node('number', '0.5')
    multiply = builder.binary_node('*')
    builder.connect(color, multiply, 'a')
    builder.connect(half, multiply, 'b')
    builder.connect(multiply, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'frogOut = (vec4(1.0, 0.0, 0.0, 1.0) * 0.5);' in source


def test_binary_with_three_inputs(builder, engine):
    output = builder.output_node('fragment')
    nodes = [builder.data_node('vector4', [str(i)] * 4) for i in range(3)]
    add = builder.binary_node('+')
    for node, letter in zip(nodes, 'abc'):
        builder.connect(node, add, letter)
    builder.connect(add, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'frogOut = (vec4(0.0, 0.0, 0.0, 0.0) + vec4(1.0, 1.0, 1.0, 1.0) + vec4(2.0, 2.0, 2.0, 2.0));' in source


def test_expression_node(builder, engine):
    output = builder.output_node('fragment')
    red = builder.expression_node('Red', 'vec4(x, 0.0, 0.0, 1.0)')
    amount = builder.data_node('number', '0.75')
    builder.connect(amount, red, 'filler_x')
    builder.connect(red, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'frogOut = vec4(0.75, 0.0, 0.0, 1.0);' in source
    assert 'main_3' not in source


def test_expression_node_product_of_fillers(builder, engine):
    output = builder.output_node('fragment')
    scale = builder.expression_node('Scale', 'x * y')
    color = builder.data_node('vector4', ['1', '0', '0', '1'])
    half = builder.data_node('number', '0.5')
    builder.connect(color, scale, 'filler_x')
    builder.connect(half, scale, 'filler_y')
    builder.connect(scale, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'frogOut = vec4(1.0, 0.0, 0.0, 1.0) * 0.5;' in source


def test_data_into_uniform_is_runtime_input(builder, engine):
    output = builder.output_node('fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    speed = builder.data_node('number', '2')
    builder.connect(speed, gradient, 'uniform_time')
    builder.connect(gradient, output, 'color')

    result = compile_graph(builder.graph, engine, stages=['fragment'])
    source = squash(result.fragment.source)
    assert 'uniform float time_2;' in source
    assert '2.0' not in source
    assert [i.id for i in result.data_inputs[gradient.id]] == ['uniform_time']
    assert speed.id in result.active_node_ids


def test_shader_into_uniform_is_spliced(builder, engine):
    output = builder.output_node('fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    amount = builder.expression_node('Amount', '0.25')
    builder.connect(amount, gradient, 'uniform_time')
    builder.connect(gradient, output, 'color')

    source = squash(fragment_source(builder, engine))
    assert 'time_2' not in source
    assert 'frogOut = vec4(vUv, 0.25, 1.0);' in source


# ============================================================================
# 3. Vertex Stage
# ============================================================================

def test_vertex_stage(builder):
    output = builder.output_node('vertex')
    shader = builder.source_node('Position', VERTEX, stage='vertex')
    builder.connect(shader, output, 'position')

    result = compile_graph(builder.graph, three_engine(), stages=['vertex'])
    source = squash(result.vertex.source)
    assert result.fragment is None
    assert 'in vec3 position;' in source
    assert 'out vec2 vUv;' in source
    assert 'uniform mat4 projectionMatrix, modelViewMatrix;' in source
    assert 'vec4 main_2() { vUv = position.xy; vec4 frogOut = projectionMatrix * modelViewMatrix * vec4(position, 1.0); return frogOut; }' in source
    assert 'frogOut = main_2();' in source
    assert source.endswith('void main() { gl_Position = main_1(); }')
    assert 'frogFragOut' not in source


def test_vertex_feeding_shader_returns_vec3(builder):
    output = builder.output_node('vertex')
    base = builder.source_node('Base', VERTEX, stage='vertex')
    wobble = builder.source_node('Wobble', """#version 300 es
in vec3 position;
uniform mat4 projectionMatrix;
uniform mat4 modelViewMatrix;
void main() {
    gl_Position = projectionMatrix * modelViewMatrix * vec4(position * 2.0, 1.0);
}
""", stage='vertex', strategies=[named_attribute_strategy('position')])
    builder.connect(base, wobble, 'filler_position')
    builder.connect(wobble, output, 'position')

    source = squash(compile_graph(builder.graph, three_engine(), stages=['vertex']).vertex.source)
    assert 'vec3 main_2() { vUv = position.xy; vec3 frogOut = position; return frogOut; }' in source
    assert 'vec4(main_2() * 2.0, 1.0)' in source


def test_orphan_vertex_node_linked(builder):
    fragment_out = builder.output_node('fragment')
    vertex_out = builder.output_node('vertex')
    fragment = builder.source_node('Image', """#version 300 es
precision highp float;
in vec2 vUv;
out vec4 color;
void main() { color = vec4(vUv, 0.0, 1.0); }
""", stage='fragment')
    vertex = builder.source_node('Image', VERTEX, stage='vertex',
                                 next_stage_node_id=fragment.id)
    builder.connect(fragment, fragment_out, 'color')

    result = compile_graph(builder.graph, core_engine(preserve={'position'}))
    assert [node.id for node in result.orphan_nodes] == [vertex.id]

    vertex_source = squash(result.vertex.source)
    fragment_source_ = squash(result.fragment.source)
    # paired nodes share one suffix, so their varying still matches
    assert 'out vec2 vUv_3;' in vertex_source
    assert 'in vec2 vUv_3;' in fragment_source_
    # orphan keeps its void main and is called from the Output's main
    assert 'void main_4()' in vertex_source
    assert f'vec4 main_{vertex_out.id}() {{ main_4(); vec4 frogOut;' in vertex_source
    assert vertex.id in result.active_node_ids


def test_connected_vertex_node_is_not_orphan(builder, engine):
    fragment_out = builder.output_node('fragment')
    vertex_out = builder.output_node('vertex')
    fragment = builder.source_node('Image', IMAGE, stage='fragment')
    vertex = builder.source_node('Image', VERTEX, stage='vertex', next_stage_node_id=fragment.id)
    builder.connect(fragment, fragment_out, 'color')
    builder.connect(vertex, vertex_out, 'position')

    result = compile_graph(builder.graph, engine)
    assert result.orphan_nodes == []
    assert MAIN_STATEMENTS_SLOT not in result.vertex.source


def test_generate_glsl_both_stages(builder, engine):
    fragment_out = builder.output_node('fragment')
    vertex_out = builder.output_node('vertex')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    position = builder.source_node('Position', VERTEX, stage='vertex')
    builder.connect(image, fragment_out, 'color')
    builder.connect(position, vertex_out, 'position')

    sources = generate_glsl(builder.graph, engine)
    assert set(sources) == {'vertex', 'fragment'}
    assert 'frogFragOut = main_1();' in sources['fragment']
    assert 'gl_Position = main_2();' in sources['vertex']


def test_stages_accepts_any_iterable(builder, engine):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    builder.connect(image, output, 'color')
    result = GraphCompiler(builder.graph, engine).compile(stage for stage in ['fragment'])
    assert result.fragment is not None
    assert result.vertex is None


# ============================================================================
# 4. Errors
# ============================================================================

def test_missing_output_node(builder, engine):
    builder.output_node('vertex')
    with pytest.raises(NoOutputNodeError) as info:
        compile_graph(builder.graph, engine)
    assert info.value.stage == 'fragment'


def test_missing_slot_propagates(builder, engine):
    output = builder.output_node('fragment')
    image = builder.source_node('Image', IMAGE, stage='fragment')
    gradient = builder.source_node('Gradient', GRADIENT, stage='fragment')
    builder.connect(gradient, image, 'texture2d_5')
    builder.connect(image, output, 'color')

    with pytest.raises(MissingInputSlotError) as info:
        compile_graph(builder.graph, engine, stages=['fragment'])
    assert info.value.node_id == image.id
    assert 'texture2d_0' in info.value.available


def test_cycle_rejected_before_compiling(builder, engine):
    output = builder.output_node('fragment')
    a = builder.source_node('A', 'not glsl at all', stage='fragment')
    b = builder.source_node('B', IMAGE, stage='fragment')
    builder.connect(a, b, 'texture2d_0')
    builder.connect(b, a, 'texture2d_0')
    builder.connect(b, output, 'color')
    with pytest.raises(GraphCycleError):
        compile_graph(builder.graph, engine)


def test_syntax_error_wrapped(builder, engine):
    output = builder.output_node('fragment')
    broken = builder.source_node('Broken', "out vec4 color;\nvoid main() { color = ; }",
                                 stage='fragment')
    builder.connect(broken, output, 'color')

    with pytest.raises(NodeCompileError) as info:
        compile_graph(builder.graph, engine, stages=['fragment'])
    assert info.value.node_id == broken.id
    assert info.value.stage == 'fragment'
    assert isinstance(info.value.__cause__, GLSLSyntaxError)
    assert info.value.__cause__.node_id == broken.id


def test_missing_out_declaration_wrapped(builder, engine):
    output = builder.output_node('fragment')
    shader = builder.source_node('NoOut', "void main() {}", stage='fragment')
    builder.connect(shader, output, 'color')

    with pytest.raises(NodeCompileError) as info:
        compile_graph(builder.graph, engine, stages=['fragment'])
    assert isinstance(info.value.__cause__, NoOutDeclarationFound)


def test_unknown_node_type(builder, engine):
    output = builder.output_node('fragment')
    mystery = builder.add(Node(id='99', name='Mystery', type='mystery', stage='fragment'))
    builder.connect(mystery, output, 'color')

    with pytest.raises(NoHandlerError) as info:
        compile_graph(builder.graph, engine, stages=['fragment'])
    assert info.value.node_type == 'mystery'


def test_data_node_error_wrapped(builder, engine, monkeypatch):
    def bad_literal(node):
        raise ShaderGraphError(f"Cannot write {node.type} value")

    monkeypatch.setattr('src.glsl_graph.core.graph_compiler.data_to_glsl', bad_literal)
    output = builder.output_node('fragment')
    amount = builder.data_node('number', '1')
    builder.connect(amount, output, 'color')

    with pytest.raises(NodeCompileError) as info:
        compile_graph(builder.graph, engine, stages=['fragment'])
    assert info.value.node_id == amount.id
    assert info.value.stage == 'fragment'
    assert isinstance(info.value.__cause__, ShaderGraphError)
