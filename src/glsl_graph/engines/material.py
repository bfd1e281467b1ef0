"""
Engine-native material nodes shared by the engine adapters.

A material node has no hand-written source: the rendering engine generates
its shaders, and the adapter's ShaderSourceProvider returns that text. The
fragment half exposes uniforms and texture samples; the vertex half exposes
the `position` attribute.
"""

import logging
from typing import List, Optional

from ..core.engine import NodeHandler, call_filler, parse_node_source, strategy_inputs
from ..core.graph import Node, NodeConfig, NodeInput, NodeProperty, UniformDecl, does_link_thru_shader
from ..core.strategy import named_attribute_strategy, texture2d_strategy, uniform_strategy
from ..transformer.entry_point import return_position, return_position_hard_coded

logger = logging.getLogger(__name__)


def property_inputs(properties: List[NodeProperty]) -> List[NodeInput]:
    """One `property_<name>` input per material property."""
    return [
        NodeInput(name=p.display_name, id=f"property_{p.property}", type='property',
                  data_type=p.type, bakeable=p.filler_name is not None, property=p.property)
        for p in properties
    ]


def material_node(id: str, name: str, type: str, stage: str, properties: List[NodeProperty],
                  next_stage_node_id: Optional[str] = None,
                  uniforms: Optional[List[UniformDecl]] = None, mangle: bool = True) -> Node:
    strategies = [
        uniform_strategy(),
        texture2d_strategy() if stage == 'fragment' else named_attribute_strategy('position'),
    ]
    return Node(
        id=id, name=name, type=type, stage=stage,
        config=NodeConfig(strategies=strategies, uniforms=list(uniforms or []),
                          properties=list(properties), preprocess=True, version=3,
                          mangle=mangle),
        next_stage_node_id=next_stage_node_id,
        inputs=property_inputs(properties),
    )


def _produce_tree(context, graph, node, input_edges, names):
    source = context.shader_source(node, node.stage)
    logger.debug(f"Fetched {len(source)} chars of {node.stage} source for {node.type} node {node.id}")
    return parse_node_source(context, node, source, names)


def _manipulate_tree(context, graph, node, tree, names):
    """
    Engine vertex shaders return `transformed` when feeding another shader,
    and the clip-space position otherwise.
    """
    if node.stage != 'vertex':
        return
    if does_link_thru_shader(graph, node):
        return_position_hard_coded(tree, 'vec3', 'transformed')
    else:
        return_position(tree)


MATERIAL_HANDLER = NodeHandler(
    produce_tree=_produce_tree,
    manipulate_tree=_manipulate_tree,
    find_inputs=strategy_inputs,
    produce_filler=call_filler,
)
