"""GLSL parsing: tree-sitter front end and the mutable syntax tree."""

from .glsl_parser import GLSLParser
from . import ast_nodes

__all__ = ['GLSLParser', 'ast_nodes']
