"""GLSL preprocessing (macros, conditionals, comments)."""

from .preprocessor_transformer import PreprocessorTransformer, strip_comments

__all__ = ['PreprocessorTransformer', 'strip_comments']
