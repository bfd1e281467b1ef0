"""
glsl_graph - links a graph of GLSL shader nodes into one program per stage.

Usage:
    from src.glsl_graph import GraphBuilder, compile_graph, three_engine

    builder = GraphBuilder()
    output = builder.output_node('fragment')
    image = builder.source_node('Image', source, stage='fragment')
    builder.connect(image, output, 'color')
    result = compile_graph(builder.graph, three_engine(), stages=['fragment'])
    print(result.fragment.source)
"""

from .core import (
    CompileResult, EngineAdapter, EngineContext, Graph, GraphBuilder, GraphCompiler,
    StaticSourceProvider, compile_graph, core_engine, generate_glsl,
)
from .engines import babylon_engine, three_engine
from .errors import ShaderGraphError

__version__ = '0.1.0'

__all__ = [
    'CompileResult', 'EngineAdapter', 'EngineContext', 'Graph', 'GraphBuilder',
    'GraphCompiler', 'StaticSourceProvider', 'compile_graph', 'core_engine',
    'generate_glsl', 'babylon_engine', 'three_engine', 'ShaderGraphError',
]
