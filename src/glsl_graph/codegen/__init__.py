"""GLSL code generation."""

from .glsl_emitter import GLSLEmitter, generate

__all__ = ['GLSLEmitter', 'generate']
