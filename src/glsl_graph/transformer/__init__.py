"""Tree rewrites: hygiene renaming, entry-point normalization, sections."""

from .entry_point import (
    convert_vertex_main, normalize_main, normalize_vertex_main, return_position,
    return_position_hard_coded, return_position_vec3_right, upgrade_to_glsl3,
)
from .hygiene import NameMap, ScopeRenamer, mangle_name, rename_bindings
from .sections import (
    MergeOptions, ShaderSections, merge, sections_to_program, split, without_existing_ins,
)

__all__ = [
    'convert_vertex_main', 'normalize_main', 'normalize_vertex_main', 'return_position',
    'return_position_hard_coded', 'return_position_vec3_right', 'upgrade_to_glsl3',
    'NameMap', 'ScopeRenamer', 'mangle_name', 'rename_bindings',
    'MergeOptions', 'ShaderSections', 'merge', 'sections_to_program', 'split',
    'without_existing_ins',
]
