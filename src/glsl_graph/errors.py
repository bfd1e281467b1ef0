"""
Exceptions raised while linking a shader graph.

Every failure stops the whole compile; no partial GLSL is ever returned.

Exception Hierarchy:
    ShaderGraphError (base)
    ├── GraphStructureError
    │   ├── NoOutputNodeError
    │   ├── DanglingEdgeError
    │   ├── DuplicateInputEdgeError
    │   ├── GraphCycleError
    │   └── NoHandlerError
    ├── GLSLSyntaxError
    ├── NormalizationError
    │   ├── NoOutDeclarationFound
    │   ├── NoPositionAssignmentFound
    │   └── UnsupportedBindingKind
    ├── MissingInputSlotError
    ├── PreprocessorError
    └── NodeCompileError
"""

from typing import Iterable, Optional, Tuple


class ShaderGraphError(Exception):
    """Base exception for all shader graph errors."""
    pass


# =============================================================================
# Structural Errors
# =============================================================================

class GraphStructureError(ShaderGraphError):
    """Base exception for malformed graphs. Raised before any node compiles."""
    pass


class NoOutputNodeError(GraphStructureError):
    """Raised when a requested stage has no Output node."""

    def __init__(self, stage: str):
        super().__init__(f"No output node found for stage '{stage}'")
        self.stage = stage


class DanglingEdgeError(GraphStructureError):
    """
    Raised when an edge references a node id that is not in the graph.

    Attributes:
        edge_id: Offending edge
        node_id: The missing node id
    """

    def __init__(self, edge_id: str, node_id: str, end: str):
        super().__init__(
            f"Edge '{edge_id}' {end} references missing node '{node_id}'"
        )
        self.edge_id = edge_id
        self.node_id = node_id


class DuplicateInputEdgeError(GraphStructureError):
    """Raised when two edges target the same (to, input) pair."""

    def __init__(self, edge_id: str, node_id: str, input_id: str):
        super().__init__(
            f"Edge '{edge_id}' targets input '{input_id}' of node "
            f"'{node_id}', which is already connected"
        )
        self.edge_id = edge_id
        self.node_id = node_id
        self.input_id = input_id


class GraphCycleError(GraphStructureError):
    """Raised when the graph contains a cycle."""

    def __init__(self, cycle: Iterable[str]):
        self.cycle = list(cycle)
        super().__init__(f"Graph contains a cycle: {' -> '.join(self.cycle)}")


class NoHandlerError(GraphStructureError):
    """Raised when no engine or core handler exists for a node type."""

    def __init__(self, node_id: str, node_type: str, engine: str):
        super().__init__(
            f"No handler for node '{node_id}' of type '{node_type}' "
            f"in engine '{engine}'"
        )
        self.node_id = node_id
        self.node_type = node_type
        self.engine = engine


# =============================================================================
# Source Errors
# =============================================================================

class GLSLSyntaxError(ShaderGraphError):
    """
    Raised when a node's GLSL source cannot be parsed.

    Attributes:
        location: (line, column) tuple, 0-based
        node_id: Node whose source failed, when known
    """

    def __init__(self, message: str, location: Optional[Tuple[int, int]] = None,
                 node_id: Optional[str] = None):
        self.message = message
        self.location = location
        self.node_id = node_id
        if location:
            line, col = location
            super().__init__(f"{message} at line {line+1}, column {col+1}")
        else:
            super().__init__(message)


class NormalizationError(ShaderGraphError):
    """Base exception for source that does not have the shape the linker needs."""
    pass


class NoOutDeclarationFound(NormalizationError):
    """Raised when a fragment shader has no top-level `out vec4` declaration."""
    pass


class NoPositionAssignmentFound(NormalizationError):
    """Raised when a vertex main never assigns gl_Position."""
    pass


class UnsupportedBindingKind(NormalizationError):
    """Raised when the renamer meets a reference it does not know how to rename."""

    def __init__(self, name: str, kind: str):
        super().__init__(f"Cannot rename '{name}': unsupported reference kind {kind}")
        self.name = name
        self.kind = kind


class MissingInputSlotError(ShaderGraphError):
    """
    Raised when an edge targets a slot that no strategy discovered.

    Attributes:
        node_id: Target node
        input_id: Requested slot id
        available: Slot ids that do exist on the node
    """

    def __init__(self, node_id: str, input_id: str, available: Iterable[str] = ()):
        self.node_id = node_id
        self.input_id = input_id
        self.available = sorted(available)
        super().__init__(
            f"Node '{node_id}' has no input slot '{input_id}' "
            f"(available: {', '.join(self.available) or 'none'})"
        )


class PreprocessorError(ShaderGraphError):
    """Raised on #error directives and unbalanced conditionals."""
    pass


class NodeCompileError(ShaderGraphError):
    """
    Wraps any failure raised while compiling a single node.

    The original exception is chained as __cause__.
    """

    def __init__(self, node_id: str, stage: str, message: str):
        super().__init__(f"[{stage}] node '{node_id}': {message}")
        self.node_id = node_id
        self.stage = stage
