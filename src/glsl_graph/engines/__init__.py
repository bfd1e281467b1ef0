"""Rendering engine adapters."""

from .babylon import babylon_engine
from .three import three_engine

__all__ = ['babylon_engine', 'three_engine']
