"""
Graph data model and graph queries.

A Graph is a list of nodes and a list of edges. Edges point from a producer
node to a named input slot on a consumer node; compilation walks them
backwards from each stage's Output node.
"""

import logging
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Dict, List, Optional, Set

from ..errors import ShaderGraphError

logger = logging.getLogger(__name__)


class NodeType:
    OUTPUT = 'output'
    SOURCE = 'source'
    BINARY = 'binary'


class EngineNodeType:
    PHYSICAL = 'physical'
    PHONG = 'phong'
    TOON = 'toon'


STAGES = ('vertex', 'fragment')

DATA_NODE_TYPES = {'number', 'vector2', 'vector3', 'vector4', 'rgb', 'rgba'}

BINARY_OPERATORS = {'+', '-', '*', '/'}

# Slot id prefixes whose producers are plain data bound at runtime
DATA_INPUT_PREFIXES = ('uniform_', 'property_')


@dataclass
class NodeInput:
    """
    One input of a node, as shown to the graph editor.

    Attributes:
        name: Display name (the name the author wrote)
        id: Slot id edges target
        type: 'uniform', 'property' or 'filler'
        data_type: Graph data type the slot accepts, if known
        bakeable: Code may be spliced in instead of binding data
        property: Engine material property behind a property input
    """
    name: str
    id: str
    type: str = 'filler'
    data_type: Optional[str] = None
    bakeable: bool = False
    property: Optional[str] = None


@dataclass
class NodeProperty:
    """
    Engine material property.

    A `property_<property>` edge is spliced into the slot named by
    filler_name; without one the property is data only.
    """
    display_name: str
    property: str
    type: str
    filler_name: Optional[str] = None


@dataclass
class UniformDecl:
    """Runtime uniform a node exposes to the editor."""
    name: str
    type: str
    value: Any = None


@dataclass
class NodeConfig:
    strategies: list = field(default_factory=list)
    uniforms: List[UniformDecl] = field(default_factory=list)
    properties: List[NodeProperty] = field(default_factory=list)
    preprocess: bool = True
    version: int = 3
    mangle: bool = True
    input_mapping: Dict[str, str] = field(default_factory=dict)


@dataclass
class Node:
    """
    Graph node.

    Data nodes carry `value` (a string, or a list of strings for vectors)
    and have no source. Binary nodes carry `operator`.
    """
    id: str
    name: str
    type: str
    stage: Optional[str] = None
    source: str = ''
    config: NodeConfig = field(default_factory=NodeConfig)
    expression_only: bool = False
    next_stage_node_id: Optional[str] = None
    inputs: List[NodeInput] = field(default_factory=list)
    value: Any = None
    operator: Optional[str] = None

    @property
    def is_data(self) -> bool:
        return self.type in DATA_NODE_TYPES

    @property
    def suffix(self) -> str:
        """Renaming suffix. Paired vertex/fragment nodes share one."""
        return self.next_stage_node_id or self.id

    @property
    def entry_name(self) -> str:
        return f"main_{self.id}"


@dataclass
class Edge:
    id: str
    from_id: str
    to_id: str
    input: str
    output: str = 'out'
    type: Optional[str] = None
    stage: Optional[str] = None


@dataclass
class Graph:
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)

    def find_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def input_edges(self, node_id: str) -> List[Edge]:
        """Edges into node_id, in edge-list order."""
        return [edge for edge in self.edges if edge.to_id == node_id]

    def output_edges(self, node_id: str) -> List[Edge]:
        return [edge for edge in self.edges if edge.from_id == node_id]

    def output_node(self, stage: str) -> Optional[Node]:
        for node in self.nodes:
            if node.type == NodeType.OUTPUT and node.stage == stage:
                return node
        return None


def is_data_input(input_id: str, from_node: Node) -> bool:
    """A data node wired into a uniform/property input binds a runtime value."""
    return from_node.is_data and input_id.startswith(DATA_INPUT_PREFIXES)


# ============================================================================
# Queries
# ============================================================================

def collect_connected_nodes(graph: Graph, node: Node) -> Dict[str, Node]:
    """Every node upstream of node, node itself included, by id."""
    found: Dict[str, Node] = {}
    stack = [node]
    while stack:
        current = stack.pop()
        if current.id in found:
            continue
        found[current.id] = current
        for edge in graph.input_edges(current.id):
            upstream = graph.find_node(edge.from_id)
            if upstream is not None:
                stack.append(upstream)
    return found


def does_link_thru_shader(graph: Graph, node: Node, _seen: Optional[Set[str]] = None) -> bool:
    """
    True if any downstream path reaches a node that is neither
    expression-only nor an Output.
    """
    seen = _seen if _seen is not None else set()
    for edge in graph.output_edges(node.id):
        downstream = graph.find_node(edge.to_id)
        if downstream is None or downstream.id in seen:
            continue
        seen.add(downstream.id)
        if (not downstream.expression_only and downstream.type != NodeType.OUTPUT) \
                or does_link_thru_shader(graph, downstream, seen):
            return True
    return False


# ============================================================================
# Data nodes
# ============================================================================

def _float_literal(value) -> str:
    text = str(value)
    if any(c in text for c in '.eE'):
        return text
    return f"{text}.0"


def data_to_glsl(node: Node) -> str:
    """
    GLSL literal for a data node.

    Examples:
        number 2      -> 2.0
        vector3 [1,0,0] -> vec3(1.0, 0.0, 0.0)
    """
    value = node.value
    if node.type == 'number':
        return _float_literal(value)
    if node.type == 'vector2':
        return f"vec2({', '.join(_float_literal(v) for v in value[:2])})"
    if node.type in ('vector3', 'rgb'):
        return f"vec3({', '.join(_float_literal(v) for v in value[:3])})"
    if node.type in ('vector4', 'rgba'):
        return f"vec4({', '.join(_float_literal(v) for v in value[:4])})"
    raise ShaderGraphError(f"Unknown GLSL inline type '{node.type}' for node '{node.id}'")


def evaluate_data(node: Node):
    """Numeric value of a data node: a float, or a tuple of floats."""
    if node.type == 'number':
        return float(node.value)
    if node.type in DATA_NODE_TYPES:
        return tuple(float(v) for v in node.value)
    return node.value


def _apply(operator: str, left, right):
    if isinstance(left, tuple) or isinstance(right, tuple):
        width = len(left) if isinstance(left, tuple) else len(right)
        lefts = left if isinstance(left, tuple) else (left,) * width
        rights = right if isinstance(right, tuple) else (right,) * width
        return tuple(_apply(operator, a, b) for a, b in zip(lefts, rights))
    if operator == '+':
        return left + right
    if operator == '-':
        return left - right
    if operator == '*':
        return left * right
    if operator == '/':
        return left / right
    raise ShaderGraphError(f"Don't know how to evaluate operator '{operator}'")


def evaluate_node(graph: Graph, node: Node, evaluate_data_node=evaluate_data):
    """
    Compute the value of a data node or a binary node over data inputs.

    Binary nodes fold their inputs left to right in edge order. Vectors are
    combined component-wise and scalars broadcast.

    Args:
        graph: Graph holding the node
        node: Node to evaluate
        evaluate_data_node: Engine hook turning a data node into a value

    Raises:
        ShaderGraphError: node has no evaluator
    """
    if node.is_data:
        return evaluate_data_node(node)
    if node.type != NodeType.BINARY:
        raise ShaderGraphError(f"No evaluator for node {node.name} ({node.id})")

    values = [
        evaluate_node(graph, graph.find_node(edge.from_id), evaluate_data_node)
        for edge in graph.input_edges(node.id)
    ]
    if not values:
        raise ShaderGraphError(f"Binary node {node.name} ({node.id}) has no inputs")
    return reduce(lambda acc, value: _apply(node.operator, acc, value), values)
