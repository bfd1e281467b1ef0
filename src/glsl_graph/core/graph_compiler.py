"""
Graph compiler: links a shader graph into one GLSL program per stage.

Algorithm (per stage):
    1. Validate the graph (dangling edges, duplicate inputs, cycles)
    2. Depth-first from the stage's Output node along incoming edges,
       in edge-list order
    3. Each node is compiled once; its upstream fillers are spliced into
       its slots, and its sections are folded into the running result
       after its upstream nodes' sections
    4. The merged sections become one program, closed by a driver main:

        void main() {
            frogFragOut = main_<output id>();
        }

Vertex nodes paired with an active fragment node (next_stage_node_id) but
not wired to the vertex Output are called from the Output's main so the
varyings they write still get computed.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..codegen.glsl_emitter import generate
from ..errors import (
    DanglingEdgeError, DuplicateInputEdgeError, GraphCycleError, NodeCompileError, NoOutputNodeError,
    ShaderGraphError,
)
from ..parser import ast_nodes as AST
from ..transformer.entry_point import make_declaration
from ..transformer.sections import (
    ShaderSections, merge, sections_to_program, split, without_existing_ins,
)
from .builders import FRAGMENT_OUTPUT, MAIN_STATEMENTS_SLOT
from .engine import EngineAdapter, EngineContext
from .graph import (
    STAGES, Edge, Graph, Node, NodeInput, NodeType, collect_connected_nodes, data_to_glsl,
    is_data_input,
)
from .node_compiler import NodeContext, compile_node

logger = logging.getLogger(__name__)

STAGE_OUTPUTS = {'fragment': FRAGMENT_OUTPUT, 'vertex': 'gl_Position'}

# Fragment first: vertex orphans depend on the active fragment nodes
COMPILE_ORDER = ('fragment', 'vertex')


# ============================================================================
# Validation
# ============================================================================

def validate_graph(graph: Graph):
    """
    Reject graphs the compiler cannot link.

    Raises:
        DanglingEdgeError: an edge names a node that does not exist
        DuplicateInputEdgeError: two edges target the same (node, input)
        GraphCycleError: edges form a cycle
    """
    ids = {node.id for node in graph.nodes}
    targets: Dict[Tuple[str, str], str] = {}
    for edge in graph.edges:
        if edge.from_id not in ids:
            raise DanglingEdgeError(edge.id, edge.from_id, 'from')
        if edge.to_id not in ids:
            raise DanglingEdgeError(edge.id, edge.to_id, 'to')
        key = (edge.to_id, edge.input)
        if key in targets:
            raise DuplicateInputEdgeError(edge.id, edge.to_id, edge.input)
        targets[key] = edge.id

    cycle = find_cycle(graph)
    if cycle:
        raise GraphCycleError(cycle)


def find_cycle(graph: Graph) -> Optional[List[str]]:
    """Node ids of one cycle (first id repeated at the end), or None."""
    downstream: Dict[str, List[str]] = {node.id: [] for node in graph.nodes}
    for edge in graph.edges:
        downstream.setdefault(edge.from_id, []).append(edge.to_id)

    WHITE, GREY, BLACK = 0, 1, 2
    color = {node_id: WHITE for node_id in downstream}

    for root in downstream:
        if color[root] != WHITE:
            continue
        stack = [(root, iter(downstream[root]))]
        trail = [root]
        color[root] = GREY
        while stack:
            node_id, children = stack[-1]
            child = next(children, None)
            if child is None:
                color[node_id] = BLACK
                stack.pop()
                trail.pop()
            elif color.get(child, WHITE) == GREY:
                return trail[trail.index(child):] + [child]
            elif color.get(child, WHITE) == WHITE:
                color[child] = GREY
                stack.append((child, iter(downstream.get(child, []))))
                trail.append(child)
    return None


# ============================================================================
# Results
# ============================================================================

@dataclass
class StageResult:
    """
    Attributes:
        sections: Merged sections, before the driver main is added
        program: Assembled program
        source: Generated GLSL
        active_ids: Nodes that took part in this stage
    """
    sections: ShaderSections
    program: AST.Program
    source: str
    active_ids: Set[str] = field(default_factory=set)


@dataclass
class CompileResult:
    """
    Attributes:
        fragment / vertex: Per-stage results (None if the stage was skipped)
        output_fragment / output_vertex: The stages' Output nodes
        data_inputs: Node id -> inputs bound to runtime data instead of code
        orphan_nodes: Vertex nodes linked in through the Output's main
    """
    fragment: Optional[StageResult] = None
    vertex: Optional[StageResult] = None
    output_fragment: Optional[Node] = None
    output_vertex: Optional[Node] = None
    data_inputs: Dict[str, List[NodeInput]] = field(default_factory=dict)
    orphan_nodes: List[Node] = field(default_factory=list)

    @property
    def active_node_ids(self) -> Set[str]:
        ids = {node.id for node in self.orphan_nodes}
        for stage in (self.fragment, self.vertex):
            if stage is not None:
                ids |= stage.active_ids
        return ids


# ============================================================================
# Compiler
# ============================================================================

class GraphCompiler:
    """
    Compiles a Graph with an EngineAdapter.

    Usage:
        compiler = GraphCompiler(graph, three_engine())
        result = compiler.compile()
        print(result.fragment.source)
    """

    def __init__(self, graph: Graph, engine: EngineAdapter,
                 context: Optional[EngineContext] = None):
        self.graph = graph
        self.engine = engine
        self.context = context or EngineContext(engine=engine.name)
        self.data_inputs: Dict[str, List[NodeInput]] = {}

        # Per-stage state
        self._contexts: Dict[str, NodeContext] = {}
        self._fillers: Dict[str, AST.SyntaxNode] = {}
        self._active: Set[str] = set()

    def compile(self, stages: Iterable[str] = STAGES) -> CompileResult:
        """
        Compile the requested stages. The fragment stage runs first so
        vertex orphans of active fragment nodes can be found.

        Raises:
            GraphStructureError: malformed graph, before any node compiles
            NodeCompileError: a node failed to compile
            MissingInputSlotError: an edge targets a slot that does not exist
        """
        requested = set(stages)
        stages = [stage for stage in COMPILE_ORDER if stage in requested]
        validate_graph(self.graph)
        outputs = {}
        for stage in stages:
            outputs[stage] = self.graph.output_node(stage)
            if outputs[stage] is None:
                raise NoOutputNodeError(stage)

        result = CompileResult(output_fragment=outputs.get('fragment'),
                               output_vertex=outputs.get('vertex'))

        if 'fragment' in stages:
            result.fragment = self.compile_stage('fragment', outputs['fragment'], self.graph.edges)

        if 'vertex' in stages:
            edges = list(self.graph.edges)
            if result.fragment is not None:
                result.orphan_nodes = self.find_orphans(outputs['vertex'], result.fragment.active_ids)
                edges += [
                    Edge(id=f"orphan_{node.id}", from_id=node.id, to_id=outputs['vertex'].id,
                         input=MAIN_STATEMENTS_SLOT, output='main', stage='vertex')
                    for node in result.orphan_nodes
                ]
            result.vertex = self.compile_stage('vertex', outputs['vertex'], edges)

        result.data_inputs = self.data_inputs
        return result

    def find_orphans(self, output_vertex: Node, fragment_ids: Set[str]) -> List[Node]:
        """Vertex halves of active fragment nodes not wired to the vertex Output."""
        connected = collect_connected_nodes(self.graph, output_vertex)
        return [
            node for node in self.graph.nodes
            if node.type != NodeType.OUTPUT and node.stage == 'vertex'
            and node.next_stage_node_id in fragment_ids
            and node.id not in connected
        ]

    def compile_stage(self, stage: str, output: Node, edges: List[Edge]) -> StageResult:
        self._contexts = {}
        self._fillers = {}
        self._active = set()

        logger.debug(f"Compiling {stage} stage from output node {output.id}")
        sections, filler = self._visit(output, stage, edges)

        assembled = self._with_stage_output(stage, sections)
        program = sections_to_program(assembled, self.engine.merge_options)
        program.statements.append(self._driver(stage, filler))
        return StageResult(sections=sections, program=program, source=generate(program),
                           active_ids=set(self._active))

    # ========================================================================
    # Traversal
    # ========================================================================

    def _visit(self, node: Node, stage: str, edges: List[Edge]) -> Tuple[ShaderSections, AST.SyntaxNode]:
        """
        Compile node and everything upstream of it.

        Returns:
            (sections contributed by this subtree, filler for the consumer)
            A node already compiled this pass contributes no sections and
            hands out a copy of its filler.
        """
        if node.id in self._fillers:
            logger.debug(f"Node {node.id} already compiled, reusing filler")
            return ShaderSections(), copy.deepcopy(self._fillers[node.id])
        self._active.add(node.id)

        if node.is_data:
            try:
                filler = self.context.parser.parse_expression(data_to_glsl(node))
            except ShaderGraphError as e:
                raise NodeCompileError(node.id, stage, str(e)) from e
            self._fillers[node.id] = copy.deepcopy(filler)
            return ShaderSections(), filler

        input_edges = [edge for edge in edges if edge.to_id == node.id]
        context = compile_node(node, self.engine, self.context, self.graph, input_edges, stage)
        self._contexts[node.id] = context

        sections = ShaderSections()
        for edge in input_edges:
            from_node = self.graph.find_node(edge.from_id)
            if is_data_input(edge.input, from_node):
                self._record_data_input(context, edge)
                self._active.add(from_node.id)
                continue

            slot = context.slot(edge.input)
            upstream_sections, filler = self._visit(from_node, stage, edges)
            sections = merge(sections, without_existing_ins(sections, upstream_sections))
            logger.debug(f"Splicing node {from_node.id} into {node.id}.{slot.id}")
            slot.mutate(filler)

        if not node.expression_only:
            sections = merge(sections, without_existing_ins(sections, split(context.tree)))

        filler = context.handler.produce_filler(node, context.tree)
        self._fillers[node.id] = copy.deepcopy(filler)
        return sections, filler

    def _record_data_input(self, context: NodeContext, edge: Edge):
        if edge.input in context.inputs:
            input_ = context.inputs[edge.input].input
        else:
            input_ = next((i for i in context.node.inputs if i.id == edge.input), None)
        if input_ is None:
            kind = 'uniform' if edge.input.startswith('uniform_') else 'property'
            name = edge.input.split('_', 1)[1]
            input_ = NodeInput(name=name, id=edge.input, type=kind, property=name if kind == 'property' else None)
        inputs = self.data_inputs.setdefault(context.node.id, [])
        if all(existing.id != input_.id for existing in inputs):
            inputs.append(input_)
        logger.debug(f"Data input {edge.input} on node {context.node.id} bound at runtime")

    # ========================================================================
    # Assembly
    # ========================================================================

    def _with_stage_output(self, stage: str, sections: ShaderSections) -> ShaderSections:
        if stage != 'fragment':
            return sections
        out = make_declaration('vec4', FRAGMENT_OUTPUT, qualifiers=['out'])
        return merge(sections, ShaderSections(out_statements=[out]))

    def _driver(self, stage: str, filler: AST.SyntaxNode) -> AST.FunctionDefinition:
        assign = AST.AssignmentExpression(
            operator='=', left=AST.Identifier(name=STAGE_OUTPUTS[stage]), right=filler,
        )
        return AST.FunctionDefinition(
            prototype=AST.FunctionPrototype(return_type=AST.FullType(name='void'), name='main'),
            body=AST.CompoundStatement(statements=[AST.ExpressionStatement(expression=assign)]),
        )


def compile_graph(graph: Graph, engine: EngineAdapter, context: Optional[EngineContext] = None,
                  stages: Iterable[str] = STAGES) -> CompileResult:
    """Compile a graph. See GraphCompiler.compile."""
    return GraphCompiler(graph, engine, context).compile(stages)


def generate_glsl(graph: Graph, engine: EngineAdapter, context: Optional[EngineContext] = None,
                  stages: Iterable[str] = STAGES) -> Dict[str, str]:
    """Stage name -> GLSL source."""
    result = compile_graph(graph, engine, context, stages)
    return {
        stage: getattr(result, stage).source
        for stage in STAGES if getattr(result, stage) is not None
    }
