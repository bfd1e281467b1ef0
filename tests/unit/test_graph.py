"""
Unit tests for the graph model: builders, queries, data nodes, evaluation
and structural validation.
"""

import pytest
from src.glsl_graph.core.builders import (
    GraphBuilder, IdGenerator, binary_node, data_node, edge, output_node, source_node,
)
from src.glsl_graph.core.graph import (
    Edge, Graph, NodeType, collect_connected_nodes, data_to_glsl, does_link_thru_shader,
    evaluate_node, is_data_input,
)
from src.glsl_graph.core.graph_compiler import find_cycle, validate_graph
from src.glsl_graph.errors import (
    DanglingEdgeError, DuplicateInputEdgeError, GraphCycleError, GraphStructureError,
    ShaderGraphError,
)

FRAGMENT = """#version 300 es
precision highp float;
out vec4 color;
void main() { color = vec4(1.0); }
"""


@pytest.fixture
def builder():
    return GraphBuilder()


# ============================================================================
# 1. Builders
# ============================================================================

def test_id_generator_is_sequential():
    ids = IdGenerator()
    assert [ids.next(), ids.next(), ids.next()] == ['1', '2', '3']


def test_builder_assigns_ids_and_edges(builder):
    output = builder.output_node('fragment')
    shader = builder.source_node('Red', FRAGMENT, stage='fragment')
    link = builder.connect(shader, output, 'color')
    assert (output.id, shader.id, link.id) == ('1', '2', '3')
    assert link.from_id == shader.id and link.to_id == output.id
    assert link.type == 'fragment'
    assert builder.graph.nodes == [output, shader]
    assert builder.graph.edges == [link]


def test_output_node_config():
    fragment = output_node('1', 'Output', 'fragment')
    vertex = output_node('2', 'Output', 'vertex')
    assert fragment.type == NodeType.OUTPUT
    assert fragment.config.input_mapping == {'color': 'filler_frogFragOut'}
    assert vertex.config.input_mapping == {'position': 'filler_gl_Position'}
    assert not fragment.config.preprocess


def test_source_node_defaults():
    node = source_node('5', 'Image', FRAGMENT, stage='fragment')
    kinds = [s.type.value for s in node.config.strategies]
    assert kinds == ['uniform', 'texture2D']
    assert node.entry_name == 'main_5'
    assert node.suffix == '5'


def test_paired_nodes_share_suffix():
    vertex = source_node('6', 'Image', '', stage='vertex', next_stage_node_id='5')
    assert vertex.suffix == '5'
    assert vertex.entry_name == 'main_6'


def test_binary_node_rejects_unknown_operator():
    with pytest.raises(ValueError):
        binary_node('1', 'Mod', '%')


def test_data_node_rejects_unknown_type():
    with pytest.raises(ValueError):
        data_node('1', 'Text', 'string', 'x')


def test_builder_binary_names(builder):
    assert builder.binary_node('+').name == 'Add'
    assert builder.binary_node('/').name == 'Divide'


# ============================================================================
# 2. Queries
# ============================================================================

def test_collect_connected_nodes(builder):
    output = builder.output_node('fragment')
    a = builder.source_node('A', FRAGMENT, stage='fragment')
    b = builder.source_node('B', FRAGMENT, stage='fragment')
    unrelated = builder.source_node('C', FRAGMENT, stage='fragment')
    builder.connect(b, a, 'texture2d_0')
    builder.connect(a, output, 'color')
    connected = collect_connected_nodes(builder.graph, output)
    assert set(connected) == {output.id, a.id, b.id}
    assert unrelated.id not in connected


def test_does_link_thru_shader(builder):
    output = builder.output_node('vertex')
    position = builder.source_node('Position', '', stage='vertex')
    shader = builder.source_node('Shader', '', stage='vertex')
    builder.connect(position, shader, 'filler_position')
    builder.connect(shader, output, 'position')
    assert does_link_thru_shader(builder.graph, position)
    assert not does_link_thru_shader(builder.graph, shader)


def test_does_link_thru_shader_through_expression(builder):
    output = builder.output_node('vertex')
    position = builder.source_node('Position', '', stage='vertex')
    add = builder.binary_node('+')
    shader = builder.source_node('Shader', '', stage='vertex')
    builder.connect(position, add, 'a')
    builder.connect(add, shader, 'filler_position')
    builder.connect(shader, output, 'position')
    assert does_link_thru_shader(builder.graph, position)


def test_does_not_link_thru_expression_to_output(builder):
    output = builder.output_node('vertex')
    position = builder.source_node('Position', '', stage='vertex')
    add = builder.binary_node('+')
    builder.connect(position, add, 'a')
    builder.connect(add, output, 'position')
    assert not does_link_thru_shader(builder.graph, position)


def test_is_data_input():
    number = data_node('1', 'n', 'number', '1')
    shader = source_node('2', 'S', FRAGMENT)
    assert is_data_input('uniform_speed', number)
    assert is_data_input('property_color', number)
    assert not is_data_input('texture2d_0', number)
    assert not is_data_input('uniform_speed', shader)


# ============================================================================
# 3. Data Nodes and Evaluation
# ============================================================================

@pytest.mark.parametrize('type_, value, expected', [
    ('number', '2', '2.0'),
    ('number', '0.5', '0.5'),
    ('vector2', ['1', '2'], 'vec2(1.0, 2.0)'),
    ('vector3', ['1', '0', '0'], 'vec3(1.0, 0.0, 0.0)'),
    ('rgb', ['1', '0.5', '0'], 'vec3(1.0, 0.5, 0.0)'),
    ('rgba', ['1', '1', '1', '0.5'], 'vec4(1.0, 1.0, 1.0, 0.5)'),
])
def test_data_to_glsl(type_, value, expected):
    assert data_to_glsl(data_node('1', 'd', type_, value)) == expected


def test_evaluate_binary_over_data(builder):
    a = builder.data_node('number', '2')
    b = builder.data_node('number', '3')
    c = builder.data_node('number', '4')
    multiply = builder.binary_node('*')
    builder.connect(a, multiply, 'a')
    builder.connect(b, multiply, 'b')
    builder.connect(c, multiply, 'c')
    assert evaluate_node(builder.graph, multiply) == 24.0


def test_evaluate_vector_broadcast(builder):
    vector = builder.data_node('vector3', ['1', '2', '3'])
    scale = builder.data_node('number', '2')
    multiply = builder.binary_node('*')
    builder.connect(vector, multiply, 'a')
    builder.connect(scale, multiply, 'b')
    assert evaluate_node(builder.graph, multiply) == (2.0, 4.0, 6.0)


def test_evaluate_subtract_left_to_right(builder):
    a = builder.data_node('number', '10')
    b = builder.data_node('number', '3')
    subtract = builder.binary_node('-')
    builder.connect(a, subtract, 'a')
    builder.connect(b, subtract, 'b')
    assert evaluate_node(builder.graph, subtract) == 7.0


def test_evaluate_shader_node_raises(builder):
    shader = builder.source_node('S', FRAGMENT, stage='fragment')
    with pytest.raises(ShaderGraphError):
        evaluate_node(builder.graph, shader)


def test_evaluate_custom_data_hook(builder):
    number = builder.data_node('number', '2')
    assert evaluate_node(builder.graph, number, lambda node: 'engine value') == 'engine value'


# ============================================================================
# 4. Validation
# ============================================================================

def test_valid_graph_passes(builder):
    output = builder.output_node('fragment')
    shader = builder.source_node('S', FRAGMENT, stage='fragment')
    builder.connect(shader, output, 'color')
    validate_graph(builder.graph)


def test_dangling_edge(builder):
    output = builder.output_node('fragment')
    builder.graph.edges.append(edge('e1', 'missing', output.id, 'color'))
    with pytest.raises(DanglingEdgeError) as info:
        validate_graph(builder.graph)
    assert info.value.edge_id == 'e1'
    assert info.value.node_id == 'missing'
    assert isinstance(info.value, GraphStructureError)


def test_duplicate_input_edge(builder):
    output = builder.output_node('fragment')
    a = builder.source_node('A', FRAGMENT, stage='fragment')
    b = builder.source_node('B', FRAGMENT, stage='fragment')
    builder.connect(a, output, 'color')
    builder.connect(b, output, 'color')
    with pytest.raises(DuplicateInputEdgeError) as info:
        validate_graph(builder.graph)
    assert info.value.input_id == 'color'


def test_cycle_detected():
    graph = Graph(
        nodes=[source_node('1', 'A', FRAGMENT), source_node('2', 'B', FRAGMENT),
               source_node('3', 'C', FRAGMENT)],
        edges=[Edge('e1', '1', '2', 'texture2d_0'), Edge('e2', '2', '3', 'texture2d_0'),
               Edge('e3', '3', '1', 'texture2d_0')],
    )
    cycle = find_cycle(graph)
    assert cycle[0] == cycle[-1]
    assert set(cycle) == {'1', '2', '3'}
    with pytest.raises(GraphCycleError):
        validate_graph(graph)


def test_self_loop_is_cycle():
    graph = Graph(nodes=[source_node('1', 'A', FRAGMENT)],
                  edges=[Edge('e1', '1', '1', 'texture2d_0')])
    assert find_cycle(graph) == ['1', '1']


def test_diamond_is_not_cycle(builder):
    output = builder.output_node('fragment')
    top = builder.source_node('Top', FRAGMENT, stage='fragment')
    left = builder.source_node('Left', FRAGMENT, stage='fragment')
    right = builder.source_node('Right', FRAGMENT, stage='fragment')
    add = builder.binary_node('+')
    builder.connect(top, left, 'texture2d_0')
    builder.connect(top, right, 'texture2d_0')
    builder.connect(left, add, 'a')
    builder.connect(right, add, 'b')
    builder.connect(add, output, 'color')
    assert find_cycle(builder.graph) is None
