"""
Engine adapters: per-rendering-engine node handlers and preserve sets.

The graph compiler never knows engine internals. For every node it asks the
adapter for a NodeHandler:

    produce_tree(context, graph, node, input_edges, names) -> Program
    manipulate_tree(context, graph, node, tree, names)       (optional)
    find_inputs(context, node, tree, input_edges, names)     -> {slot id: InputSlot}
    produce_filler(node, tree)                               -> expression

Core handlers cover `source`, `output` and `binary` nodes. An engine
overrides individual callables per node type and adds its own types
(three.js / babylon.js materials).
"""

import dataclasses
import logging
import string
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Set

from ..errors import GLSLSyntaxError, NoHandlerError, ShaderGraphError
from ..parser import ast_nodes as AST
from ..parser.glsl_parser import GLSLParser
from ..preprocessor.preprocessor_transformer import PreprocessorTransformer
from ..transformer.entry_point import (
    find_function, normalize_main, normalize_vertex_main, return_position,
    return_position_vec3_right, upgrade_to_glsl3,
)
from ..transformer.hygiene import NameMap
from ..transformer.sections import MergeOptions
from .builders import MAIN_STATEMENTS_SLOT
from .graph import Graph, Node, NodeInput, NodeType, does_link_thru_shader, evaluate_data, evaluate_node
from .strategy import InputSlot, find_inputs

logger = logging.getLogger(__name__)


class ShaderSourceProvider:
    """
    Supplies the GLSL an engine generates for an engine-native node.

    Implementations typically compile a material in the rendering engine
    and capture its shader text.
    """

    def shader_source(self, node: Node, stage: str) -> str:
        raise NotImplementedError(f"{self.__class__.__name__} cannot produce {stage} source")


class StaticSourceProvider(ShaderSourceProvider):
    """
    Canned engine source, keyed by (node id, stage) or (node type, stage).

    Usage:
        provider = StaticSourceProvider({('physical', 'fragment'): text})
    """

    def __init__(self, sources: Dict[tuple, str]):
        self.sources = dict(sources)

    def shader_source(self, node: Node, stage: str) -> str:
        for key in ((node.id, stage), (node.type, stage)):
            if key in self.sources:
                return self.sources[key]
        raise ShaderGraphError(f"No {stage} source for node '{node.id}' ({node.type})")


@dataclass
class EngineContext:
    """
    Per-compile collaborators.

    Attributes:
        engine: Engine name
        source_provider: Engine-native shader text
        runtime: Engine runtime objects, opaque to the compiler
        parser: Shared GLSL parser
    """
    engine: str
    source_provider: Optional[ShaderSourceProvider] = None
    runtime: Any = None
    parser: GLSLParser = field(default_factory=GLSLParser)

    def shader_source(self, node: Node, stage: str) -> str:
        if self.source_provider is None:
            raise ShaderGraphError(f"Engine '{self.engine}' has no source provider for node '{node.id}'")
        return self.source_provider.shader_source(node, stage)


@dataclass
class NodeHandler:
    produce_tree: Optional[Callable] = None
    manipulate_tree: Optional[Callable] = None
    find_inputs: Optional[Callable] = None
    produce_filler: Optional[Callable] = None

    def override(self, other: 'NodeHandler') -> 'NodeHandler':
        """Copy of self with other's non-None callables taking precedence."""
        changes = {
            f.name: getattr(other, f.name)
            for f in dataclasses.fields(other)
            if getattr(other, f.name) is not None
        }
        return dataclasses.replace(self, **changes)


# ============================================================================
# Core handlers
# ============================================================================

def parse_node_source(context: EngineContext, node: Node, source: str,
                      names: NameMap) -> AST.Program:
    """
    Preprocess, parse and normalize a shader node's source.

    GLSL 1 sources are upgraded first. Fragment mains become vec4-returning
    functions.
    """
    if node.config.preprocess:
        source = PreprocessorTransformer().transform(source)
    try:
        tree = context.parser.parse(source)
    except GLSLSyntaxError as e:
        e.node_id = node.id
        raise
    if node.config.version == 2 and node.stage:
        upgrade_to_glsl3(tree, node.stage)
    if node.stage == 'fragment':
        normalize_main(tree, names=names)
    return tree


def _expression_tree(context: EngineContext, source: str) -> AST.Program:
    expression = context.parser.parse_expression(source)
    return AST.Program(statements=[AST.ExpressionStatement(expression=expression)])


def _source_produce_tree(context, graph, node, input_edges, names):
    if node.expression_only:
        return _expression_tree(context, node.source)
    return parse_node_source(context, node, node.source, names)


def _source_manipulate_tree(context, graph, node, tree, names):
    """
    Vertex shaders with consumers return their position: the vec3 inside
    `vec4(x, 1.0)` when feeding another shader, the vec4 otherwise.
    """
    if node.stage != 'vertex' or node.expression_only or not graph.output_edges(node.id):
        return
    if does_link_thru_shader(graph, node):
        return_position_vec3_right(tree)
    else:
        return_position(tree)


def strategy_inputs(context, node, tree, input_edges, names) -> Dict[str, InputSlot]:
    return find_inputs(node.config.strategies, tree, names)


def call_filler(node: Node, tree) -> AST.SyntaxNode:
    return AST.CallExpression(callee=AST.Identifier(name=node.entry_name), arguments=[])


def _source_filler(node: Node, tree: AST.Program) -> AST.SyntaxNode:
    if node.expression_only:
        return tree.statements[0].expression
    return call_filler(node, tree)


def _output_produce_tree(context, graph, node, input_edges, names):
    tree = context.parser.parse(node.source)
    if node.stage == 'vertex':
        normalize_vertex_main(tree, names=names)
    else:
        normalize_main(tree, names=names)
    return tree


def _output_find_inputs(context, node, tree, input_edges, names) -> Dict[str, InputSlot]:
    slots = find_inputs(node.config.strategies, tree, names)

    def prepend_statement(filler: AST.SyntaxNode):
        main = find_function(tree, node.entry_name) or find_function(tree, 'main')
        main.body.statements.insert(0, AST.ExpressionStatement(expression=filler))

    slots[MAIN_STATEMENTS_SLOT] = InputSlot(
        input=NodeInput(name='mainStmts', id=MAIN_STATEMENTS_SLOT, type='filler'),
        mutate=prepend_statement,
    )
    return slots


def binary_letters(count: int) -> str:
    return string.ascii_lowercase[:max(count, 2)]


def _binary_produce_tree(context, graph, node, input_edges, names):
    letters = binary_letters(len(input_edges))
    return _expression_tree(context, '(' + f' {node.operator} '.join(letters) + ')')


def _binary_find_inputs(context, node, tree, input_edges, names) -> Dict[str, InputSlot]:
    slots = {}
    paths = {}
    for path in AST.iter_paths(tree):
        if isinstance(path.node, AST.Identifier):
            paths[path.node.name] = path
    for letter, path in paths.items():
        slots[letter] = InputSlot(input=NodeInput(name=letter, id=letter), mutate=path.replace)
    return slots


CORE_HANDLERS: Dict[str, NodeHandler] = {
    NodeType.SOURCE: NodeHandler(
        produce_tree=_source_produce_tree,
        manipulate_tree=_source_manipulate_tree,
        find_inputs=strategy_inputs,
        produce_filler=_source_filler,
    ),
    NodeType.OUTPUT: NodeHandler(
        produce_tree=_output_produce_tree,
        find_inputs=_output_find_inputs,
        produce_filler=call_filler,
    ),
    NodeType.BINARY: NodeHandler(
        produce_tree=_binary_produce_tree,
        find_inputs=_binary_find_inputs,
        produce_filler=lambda node, tree: tree.statements[0].expression,
    ),
}


# ============================================================================
# Adapter
# ============================================================================

@dataclass
class EngineAdapter:
    """
    Everything engine-specific the compiler needs.

    Attributes:
        name: Engine name
        preserve: Identifiers the renamer must never touch
        handlers: Node type -> handler overrides / engine-native handlers
        merge_options: Program assembly switches
        evaluate_data_node: Turns a data node into an engine value
    """
    name: str
    preserve: Set[str] = field(default_factory=set)
    handlers: Dict[str, NodeHandler] = field(default_factory=dict)
    merge_options: MergeOptions = field(default_factory=MergeOptions)
    evaluate_data_node: Callable[[Node], Any] = evaluate_data

    def handler_for(self, node: Node) -> NodeHandler:
        """
        Core handler for the node type overlaid with the engine's.

        Raises:
            NoHandlerError: neither the core nor the engine knows the type
        """
        core = CORE_HANDLERS.get(node.type)
        engine = self.handlers.get(node.type)
        if core is None and engine is None:
            raise NoHandlerError(node.id, node.type, self.name)
        if core is None:
            return engine
        if engine is None:
            return core
        return core.override(engine)

    def evaluate_node(self, graph: Graph, node: Node):
        return evaluate_node(graph, node, self.evaluate_data_node)


def core_engine(preserve: Optional[Set[str]] = None) -> EngineAdapter:
    """Engine-less adapter: core handlers only."""
    return EngineAdapter(name='core', preserve=set(preserve or ()))
