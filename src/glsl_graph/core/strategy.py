"""
Strategies: pluggable policies that discover input slots in a node's tree.

A strategy only records where a hole is. Nothing is mutated until the graph
compiler calls InputSlot.mutate(filler) with the upstream node's expression.

Slot ids:
    uniform          uniform_<name>       every uniform declarator
    texture2D        texture2d_<i>        every texture2D()/texture() call
    assignmentTo     filler_<var>         right side of `var = ...`
    declarationOf    filler_<var>         initializer of `T var = ...`
    namedAttribute   filler_<attr>        every read of attr
    variable         filler_<name>        every free identifier (first wins)
    hardCode         (none)

Names in slot ids are the names the author wrote; the NameMap from the
renamer translates them to the names currently in the tree.
"""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..codegen.glsl_emitter import generate
from ..parser import ast_nodes as AST
from ..transformer.hygiene import NameMap
from .graph import NodeInput

logger = logging.getLogger(__name__)

TEXTURE_FUNCTIONS = {'texture2D', 'texture'}

# GLSL type -> graph data type
DATA_TYPE_MAP = {
    'float': 'number', 'double': 'number', 'int': 'number', 'uint': 'number',
    'vec2': 'vector2', 'ivec2': 'vector2', 'uvec2': 'vector2', 'bvec2': 'vector2',
    'vec3': 'vector3', 'ivec3': 'vector3', 'uvec3': 'vector3', 'bvec3': 'vector3',
    'vec4': 'vector4', 'ivec4': 'vector4', 'uvec4': 'vector4', 'bvec4': 'vector4',
    'sampler2D': 'texture', 'samplerCube': 'samplerCube',
    'mat2': 'mat2', 'mat3': 'mat3', 'mat4': 'mat4',
}


class StrategyType(Enum):
    UNIFORM = 'uniform'
    TEXTURE_2D = 'texture2D'
    ASSIGNMENT_TO = 'assignmentTo'
    DECLARATION_OF = 'declarationOf'
    NAMED_ATTRIBUTE = 'namedAttribute'
    VARIABLE = 'variable'
    HARD_CODE = 'hardCode'


@dataclass
class Strategy:
    """A discovery policy and its configuration (e.g. {'assign_to': 'color'})."""
    type: StrategyType
    config: Dict[str, str] = field(default_factory=dict)


def uniform_strategy() -> Strategy:
    return Strategy(StrategyType.UNIFORM)


def texture2d_strategy() -> Strategy:
    return Strategy(StrategyType.TEXTURE_2D)


def assignment_to_strategy(assign_to: str) -> Strategy:
    return Strategy(StrategyType.ASSIGNMENT_TO, {'assign_to': assign_to})


def declaration_of_strategy(declaration_of: str) -> Strategy:
    return Strategy(StrategyType.DECLARATION_OF, {'declaration_of': declaration_of})


def named_attribute_strategy(attribute_name: str) -> Strategy:
    return Strategy(StrategyType.NAMED_ATTRIBUTE, {'attribute_name': attribute_name})


def variable_strategy() -> Strategy:
    return Strategy(StrategyType.VARIABLE)


def hard_code_strategy() -> Strategy:
    return Strategy(StrategyType.HARD_CODE)


@dataclass
class InputSlot:
    """
    A discovered hole in a node's tree.

    Attributes:
        input: Describes the slot to the graph (id, display name, kind)
        mutate: Writes a filler expression into the hole
    """
    input: NodeInput
    mutate: Callable[[AST.SyntaxNode], None]

    @property
    def id(self) -> str:
        return self.input.id


Runner = Callable[[AST.Program, Strategy, NameMap], List[InputSlot]]


# ============================================================================
# Splicing helpers
# ============================================================================

def _replace_references(program: AST.Program, name: str, filler: AST.SyntaxNode) -> int:
    """Replace every read of `name` with a copy of filler. Returns the count."""
    replaced = 0

    def replace(path):
        nonlocal replaced
        if path.node.name == name and not _is_callee(path):
            path.replace(copy.deepcopy(filler))
            replaced += 1

    AST.walk(program, {'Identifier': replace})
    return replaced


def _is_callee(path: AST.Path) -> bool:
    return isinstance(path.parent, AST.CallExpression) and path.key == 'callee'


# ============================================================================
# Runners
# ============================================================================

def _uniform_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    slots = []
    for stmt in program.statements:
        if not isinstance(stmt, AST.Declaration) or 'uniform' not in stmt.type.qualifiers:
            continue
        for declarator in stmt.declarators:
            original = names.original(declarator.name)
            slots.append(InputSlot(
                input=NodeInput(
                    name=original, id=f"uniform_{original}", type='uniform',
                    data_type=DATA_TYPE_MAP.get(stmt.type.name), bakeable=True,
                ),
                mutate=_make_uniform_mutate(program, stmt, declarator),
            ))
    return slots


def _make_uniform_mutate(program: AST.Program, declaration: AST.Declaration,
                         declarator: AST.Declarator):
    def mutate(filler: AST.SyntaxNode):
        # Drop the declarator (and the declaration once empty)
        declaration.declarators[:] = [d for d in declaration.declarators if d is not declarator]
        if not declaration.declarators:
            program.statements[:] = [s for s in program.statements if s is not declaration]
        count = _replace_references(program, declarator.name, filler)
        logger.debug(f"Replaced {count} references to uniform {declarator.name}")
    return mutate


def _texture2d_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    calls: List[AST.Path] = []

    def collect(path):
        callee = path.node.callee
        if isinstance(callee, AST.Identifier) and callee.name in TEXTURE_FUNCTIONS:
            calls.append(path)

    AST.walk(program, {'CallExpression': collect})

    slots = []
    for index, path in enumerate(calls):
        sampler = path.node.arguments[0] if path.node.arguments else None
        if isinstance(sampler, AST.Identifier):
            sampler_name = names.original(sampler.name)
        else:
            sampler_name = generate(sampler) if sampler is not None else ''
        slots.append(InputSlot(
            input=NodeInput(name=sampler_name, id=f"texture2d_{index}", type='filler',
                            data_type='vector4'),
            mutate=path.replace,
        ))
    return slots


def _assignment_to_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    original = strategy.config['assign_to']
    target = names.get(original)
    found: Optional[AST.AssignmentExpression] = None

    def match(path):
        nonlocal found
        left = path.node.left
        if isinstance(left, AST.Identifier) and left.name == target:
            found = path.node

    AST.walk(program, {'AssignmentExpression': match})
    if found is None:
        return []

    def mutate(filler: AST.SyntaxNode):
        found.right = filler

    return [InputSlot(input=NodeInput(name=original, id=f"filler_{original}", type='filler'),
                      mutate=mutate)]


def _declaration_of_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    original = strategy.config['declaration_of']
    target = names.get(original)
    found = [d for d in AST.find_all(program, AST.Declarator) if d.name == target]
    if not found:
        return []
    declarator = found[-1]

    def mutate(filler: AST.SyntaxNode):
        declarator.initializer = filler

    return [InputSlot(input=NodeInput(name=original, id=f"filler_{original}", type='filler'),
                      mutate=mutate)]


def _named_attribute_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    original = strategy.config['attribute_name']
    target = names.get(original)

    def mutate(filler: AST.SyntaxNode):
        count = _replace_references(program, target, filler)
        logger.debug(f"Replaced {count} reads of attribute {target}")

    return [InputSlot(
        input=NodeInput(name=original, id=f"filler_{original}", type='filler', bakeable=True),
        mutate=mutate,
    )]


def _variable_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    """
    One slot per identifier reference, keyed by name.

    A name referenced twice yields two slots with the same id; find_inputs
    keeps the first, so only the first reference is ever filled.
    """
    slots = []

    def collect(path):
        if _is_callee(path):
            return
        original = names.original(path.node.name)
        slots.append(InputSlot(
            input=NodeInput(name=original, id=f"filler_{original}", type='filler'),
            mutate=path.replace,
        ))

    AST.walk(program, {'Identifier': collect})
    return slots


def _hard_code_slots(program: AST.Program, strategy: Strategy, names: NameMap) -> List[InputSlot]:
    return []


STRATEGY_RUNNERS: Dict[StrategyType, Runner] = {
    StrategyType.UNIFORM: _uniform_slots,
    StrategyType.TEXTURE_2D: _texture2d_slots,
    StrategyType.ASSIGNMENT_TO: _assignment_to_slots,
    StrategyType.DECLARATION_OF: _declaration_of_slots,
    StrategyType.NAMED_ATTRIBUTE: _named_attribute_slots,
    StrategyType.VARIABLE: _variable_slots,
    StrategyType.HARD_CODE: _hard_code_slots,
}


def apply_strategy(strategy: Strategy, program: AST.Program,
                   names: Optional[NameMap] = None) -> List[InputSlot]:
    """Run one strategy. Discovery never mutates the tree."""
    runner = STRATEGY_RUNNERS[strategy.type]
    slots = runner(program, strategy, names or NameMap())
    logger.debug(f"{strategy.type.value} found {len(slots)} slots")
    return slots


def find_inputs(strategies: List[Strategy], program: AST.Program,
                names: Optional[NameMap] = None) -> Dict[str, InputSlot]:
    """
    Run strategies in order and index their slots by id.

    When two slots share an id, the first discovered wins.
    """
    slots: Dict[str, InputSlot] = {}
    for strategy in strategies:
        for slot in apply_strategy(strategy, program, names):
            slots.setdefault(slot.id, slot)
    return slots
