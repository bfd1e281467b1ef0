"""
Node constructors and a GraphBuilder that hands out ids.

    builder = GraphBuilder()
    output = builder.output_node('fragment')
    shader = builder.source_node('Image', source, stage='fragment')
    builder.connect(shader, output, 'color')
    graph = builder.graph
"""

from typing import List, Optional

from .graph import (
    BINARY_OPERATORS, DATA_NODE_TYPES, Edge, Graph, Node, NodeConfig, NodeInput,
    NodeType, UniformDecl,
)
from .strategy import (
    Strategy, assignment_to_strategy, texture2d_strategy, uniform_strategy, variable_strategy,
)

FRAGMENT_OUTPUT = 'frogFragOut'

# Output slot that prepends a statement to the Output node's main
MAIN_STATEMENTS_SLOT = 'filler_mainStmts'

OUTPUT_FRAGMENT_SOURCE = f"""#version 300 es
precision highp float;

out vec4 {FRAGMENT_OUTPUT};

void main() {{
    {FRAGMENT_OUTPUT} = vec4(1.0);
}}
"""

OUTPUT_VERTEX_SOURCE = """#version 300 es
precision highp float;

void main() {
    gl_Position = vec4(1.0);
}
"""

BINARY_NAMES = {'+': 'add', '-': 'subtract', '*': 'multiply', '/': 'divide'}


class IdGenerator:
    """Sequential string ids, one counter per graph."""

    def __init__(self, start: int = 1):
        self._next = start

    def next(self) -> str:
        value = str(self._next)
        self._next += 1
        return value


# ============================================================================
# Constructors
# ============================================================================

def output_node(id: str, name: str, stage: str) -> Node:
    if stage == 'fragment':
        return Node(
            id=id, name=name, type=NodeType.OUTPUT, stage=stage,
            source=OUTPUT_FRAGMENT_SOURCE,
            config=NodeConfig(
                strategies=[assignment_to_strategy(FRAGMENT_OUTPUT)],
                preprocess=False,
                input_mapping={'color': f"filler_{FRAGMENT_OUTPUT}"},
            ),
            inputs=[NodeInput(name='Color', id=f"filler_{FRAGMENT_OUTPUT}", data_type='vector4')],
        )
    return Node(
        id=id, name=name, type=NodeType.OUTPUT, stage=stage,
        source=OUTPUT_VERTEX_SOURCE,
        config=NodeConfig(
            strategies=[assignment_to_strategy('gl_Position')],
            preprocess=False,
            input_mapping={'position': 'filler_gl_Position'},
        ),
        inputs=[NodeInput(name='Position', id='filler_gl_Position', data_type='vector4')],
    )


def source_node(id: str, name: str, source: str, stage: Optional[str] = None,
                strategies: Optional[List[Strategy]] = None, version: int = 3,
                preprocess: bool = True, next_stage_node_id: Optional[str] = None,
                uniforms: Optional[List[UniformDecl]] = None) -> Node:
    """Hand-written shader. Defaults to the uniform and texture2D strategies."""
    if strategies is None:
        strategies = [uniform_strategy(), texture2d_strategy()]
    return Node(
        id=id, name=name, type=NodeType.SOURCE, stage=stage, source=source,
        config=NodeConfig(strategies=strategies, uniforms=list(uniforms or []),
                          preprocess=preprocess, version=version),
        next_stage_node_id=next_stage_node_id,
    )


def expression_node(id: str, name: str, source: str) -> Node:
    """Single GLSL expression; every free identifier becomes a slot."""
    return Node(
        id=id, name=name, type=NodeType.SOURCE, source=source,
        config=NodeConfig(strategies=[variable_strategy()], preprocess=False),
        expression_only=True,
    )


def binary_node(id: str, name: str, operator: str, stage: Optional[str] = None) -> Node:
    if operator not in BINARY_OPERATORS:
        raise ValueError(f"Unsupported binary operator '{operator}'")
    return Node(
        id=id, name=name, type=NodeType.BINARY, stage=stage, operator=operator,
        config=NodeConfig(preprocess=False), expression_only=True,
        inputs=[NodeInput(name='a', id='a'), NodeInput(name='b', id='b')],
    )


def add_node(id: str, name: str = 'Add', stage: Optional[str] = None) -> Node:
    return binary_node(id, name, '+', stage)


def subtract_node(id: str, name: str = 'Subtract', stage: Optional[str] = None) -> Node:
    return binary_node(id, name, '-', stage)


def multiply_node(id: str, name: str = 'Multiply', stage: Optional[str] = None) -> Node:
    return binary_node(id, name, '*', stage)


def divide_node(id: str, name: str = 'Divide', stage: Optional[str] = None) -> Node:
    return binary_node(id, name, '/', stage)


def data_node(id: str, name: str, type: str, value) -> Node:
    if type not in DATA_NODE_TYPES:
        raise ValueError(f"Unknown data node type '{type}'")
    return Node(id=id, name=name, type=type, value=value)


def edge(id: str, from_id: str, to_id: str, input: str, output: str = 'out',
         type: Optional[str] = None) -> Edge:
    return Edge(id=id, from_id=from_id, to_id=to_id, input=input, output=output, type=type)


# ============================================================================
# Builder
# ============================================================================

class GraphBuilder:
    """Collects nodes and edges, assigning ids from one IdGenerator."""

    def __init__(self, ids: Optional[IdGenerator] = None):
        self.ids = ids or IdGenerator()
        self.graph = Graph()

    def add(self, node: Node) -> Node:
        self.graph.nodes.append(node)
        return node

    def output_node(self, stage: str, name: str = 'Output') -> Node:
        return self.add(output_node(self.ids.next(), name, stage))

    def source_node(self, name: str, source: str, **kwargs) -> Node:
        return self.add(source_node(self.ids.next(), name, source, **kwargs))

    def expression_node(self, name: str, source: str) -> Node:
        return self.add(expression_node(self.ids.next(), name, source))

    def binary_node(self, operator: str, name: Optional[str] = None,
                    stage: Optional[str] = None) -> Node:
        name = name or BINARY_NAMES[operator].capitalize()
        return self.add(binary_node(self.ids.next(), name, operator, stage))

    def data_node(self, type: str, value, name: Optional[str] = None) -> Node:
        return self.add(data_node(self.ids.next(), name or type, type, value))

    def connect(self, from_node: Node, to_node: Node, input: str, output: str = 'out') -> Edge:
        new_edge = edge(self.ids.next(), from_node.id, to_node.id, input, output,
                        type=from_node.stage or to_node.stage)
        self.graph.edges.append(new_edge)
        return new_edge
