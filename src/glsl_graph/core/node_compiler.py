"""
Per-node compilation: produce the tree, normalize, rename, discover slots.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import GraphStructureError, MissingInputSlotError, NodeCompileError, ShaderGraphError
from ..parser import ast_nodes as AST
from ..transformer.hygiene import NameMap, rename_bindings
from .engine import EngineAdapter, EngineContext, NodeHandler
from .graph import Edge, Graph, Node
from .strategy import InputSlot

logger = logging.getLogger(__name__)


@dataclass
class NodeContext:
    """
    A node's compiled tree and its input slots, for one compile pass.

    Attributes:
        node: The graph node
        tree: Parsed, normalized and renamed tree, spliced in place
        inputs: Slot id -> InputSlot
        names: Original -> current names
        handler: Handler that produced the tree
    """
    node: Node
    tree: AST.Program
    inputs: Dict[str, InputSlot] = field(default_factory=dict)
    names: NameMap = field(default_factory=NameMap)
    handler: Optional[NodeHandler] = None

    def aliases(self) -> Dict[str, str]:
        """
        Other ids an edge may use for a slot.

        - the node's input_mapping (`color` -> `filler_frogFragOut`)
        - `property_<name>` for material properties with a filler
        - `filler_<name>` for slots named after a single variable
          (`filler_map` -> `texture2d_0` when map is sampled once)
        """
        aliases = dict(self.node.config.input_mapping)
        for prop in self.node.config.properties:
            if prop.filler_name:
                aliases[f"property_{prop.property}"] = prop.filler_name

        by_name: Dict[str, List[str]] = {}
        for slot in self.inputs.values():
            if slot.input.type == 'filler':
                by_name.setdefault(f"filler_{slot.input.name}", []).append(slot.id)
        for alias, ids in by_name.items():
            if len(ids) == 1 and alias not in self.inputs:
                aliases.setdefault(alias, ids[0])
        return aliases

    def slot(self, input_id: str) -> InputSlot:
        """
        Resolve an edge's input id to a slot.

        Raises:
            MissingInputSlotError: no slot and no alias matches
        """
        aliases = self.aliases()
        target, seen = input_id, set()
        while target not in self.inputs:
            seen.add(target)
            target = aliases.get(target)
            if target is None or target in seen:
                raise MissingInputSlotError(self.node.id, input_id, self.inputs.keys())
        return self.inputs[target]


def compile_node(node: Node, engine: EngineAdapter, context: EngineContext,
                 graph: Graph, input_edges: List[Edge], stage: Optional[str] = None) -> NodeContext:
    """
    Compile one node.

    Steps:
    1. Produce the tree (parse, GLSL 1 upgrade, main normalization)
    2. Engine manipulation (vertex main conversion)
    3. Hygiene renaming, main -> main_<id> (skipped for expression nodes)
    4. Strategies discover the input slots

    Raises:
        NodeCompileError: any node-level failure, chained to the cause
        GraphStructureError: no handler for the node type
    """
    handler = engine.handler_for(node)
    stage = stage or node.stage or 'none'
    names = NameMap()
    try:
        tree = handler.produce_tree(context, graph, node, input_edges, names)
        if handler.manipulate_tree is not None:
            handler.manipulate_tree(context, graph, node, tree, names)

        if not node.expression_only:
            rename_bindings(tree, engine.preserve, node.suffix,
                            function_names={'main': node.entry_name},
                            mangle=node.config.mangle, names=names)

        inputs = handler.find_inputs(context, node, tree, input_edges, names)
    except (GraphStructureError, NodeCompileError):
        raise
    except ShaderGraphError as e:
        raise NodeCompileError(node.id, stage, str(e)) from e

    logger.debug(f"Compiled node {node.id} ({node.type}) with slots {sorted(inputs)}")
    return NodeContext(node=node, tree=tree, inputs=inputs, names=names, handler=handler)
