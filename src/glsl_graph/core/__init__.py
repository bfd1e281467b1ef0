"""Graph model, strategies, engine adapters and the graph compiler."""

from .builders import GraphBuilder, IdGenerator
from .engine import (
    EngineAdapter, EngineContext, NodeHandler, ShaderSourceProvider, StaticSourceProvider,
    core_engine,
)
from .graph import Edge, Graph, Node, NodeConfig, NodeInput, NodeType, evaluate_node
from .graph_compiler import CompileResult, GraphCompiler, compile_graph, generate_glsl
from .strategy import InputSlot, Strategy, StrategyType, apply_strategy, find_inputs

__all__ = [
    'GraphBuilder', 'IdGenerator',
    'EngineAdapter', 'EngineContext', 'NodeHandler', 'ShaderSourceProvider',
    'StaticSourceProvider', 'core_engine',
    'Edge', 'Graph', 'Node', 'NodeConfig', 'NodeInput', 'NodeType', 'evaluate_node',
    'CompileResult', 'GraphCompiler', 'compile_graph', 'generate_glsl',
    'InputSlot', 'Strategy', 'StrategyType', 'apply_strategy', 'find_inputs',
]
