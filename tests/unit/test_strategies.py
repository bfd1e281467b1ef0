"""
Unit tests for input-slot discovery strategies.

Tests:
- Every strategy kind and its slot ids
- Discovery never mutates; mutate splices the filler
- find_inputs ordering (first id wins)
- Name translation through a NameMap after renaming
"""

import pytest
from src.glsl_graph.codegen import generate
from src.glsl_graph.core.strategy import (
    StrategyType, apply_strategy, assignment_to_strategy, declaration_of_strategy, find_inputs,
    hard_code_strategy, named_attribute_strategy, texture2d_strategy, uniform_strategy,
    variable_strategy,
)
from src.glsl_graph.parser import GLSLParser
from src.glsl_graph.transformer.hygiene import rename_bindings


@pytest.fixture
def parser():
    return GLSLParser()


def squash(text):
    return ' '.join(text.split())


SHADER = """
uniform float speed;
uniform sampler2D image, mask;
in vec2 vUv;
out vec4 color;
void main() {
    vec4 base = texture(image, vUv);
    vec4 cut = texture2D(mask, vUv * speed);
    color = base * cut;
}
"""


# ============================================================================
# 1. uniform
# ============================================================================

def test_uniform_slots(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(uniform_strategy(), program)
    assert [s.id for s in slots] == ['uniform_speed', 'uniform_image', 'uniform_mask']
    speed = slots[0].input
    assert speed.type == 'uniform'
    assert speed.data_type == 'number'
    assert slots[1].input.data_type == 'texture'


def test_uniform_mutate_inlines_and_removes_declaration(parser):
    program = parser.parse(SHADER)
    slots = {s.id: s for s in apply_strategy(uniform_strategy(), program)}
    slots['uniform_speed'].mutate(parser.parse_expression('2.0'))
    output = squash(generate(program))
    assert 'uniform float speed' not in output
    assert 'vUv * 2.0' in output


def test_uniform_mutate_keeps_sibling_declarators(parser):
    program = parser.parse(SHADER)
    slots = {s.id: s for s in apply_strategy(uniform_strategy(), program)}
    slots['uniform_image'].mutate(parser.parse_expression('otherImage'))
    output = squash(generate(program))
    assert 'uniform sampler2D mask;' in output
    assert 'texture(otherImage, vUv)' in output


def test_discovery_does_not_mutate(parser):
    program = parser.parse(SHADER)
    before = generate(program)
    for strategy in (uniform_strategy(), texture2d_strategy(), variable_strategy(),
                     assignment_to_strategy('color'), named_attribute_strategy('vUv')):
        apply_strategy(strategy, program)
    assert generate(program) == before


# ============================================================================
# 2. texture2D
# ============================================================================

def test_texture2d_slots_numbered_in_order(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(texture2d_strategy(), program)
    assert [s.id for s in slots] == ['texture2d_0', 'texture2d_1']
    assert [s.input.name for s in slots] == ['image', 'mask']


def test_texture2d_mutate_replaces_call(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(texture2d_strategy(), program)
    slots[1].mutate(parser.parse_expression('vec4(1.0)'))
    output = squash(generate(program))
    assert 'vec4 cut = vec4(1.0);' in output
    assert 'texture(image, vUv)' in output


def test_texture2d_slots_survive_earlier_splice(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(texture2d_strategy(), program)
    slots[0].mutate(parser.parse_expression('vec4(0.5)'))
    slots[1].mutate(parser.parse_expression('vec4(1.0)'))
    output = squash(generate(program))
    assert 'vec4 base = vec4(0.5);' in output
    assert 'vec4 cut = vec4(1.0);' in output


# ============================================================================
# 3. assignmentTo / declarationOf
# ============================================================================

def test_assignment_to_slot(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(assignment_to_strategy('color'), program)
    assert [s.id for s in slots] == ['filler_color']
    slots[0].mutate(parser.parse_expression('vec4(0.0)'))
    assert 'color = vec4(0.0);' in squash(generate(program))


def test_assignment_to_last_match(parser):
    program = parser.parse("""
    out vec4 color;
    void main() {
        color = vec4(0.0);
        color = vec4(1.0);
    }
    """)
    slots = apply_strategy(assignment_to_strategy('color'), program)
    slots[0].mutate(parser.parse_expression('fill'))
    output = squash(generate(program))
    assert 'color = vec4(0.0); color = fill;' in output


def test_assignment_to_missing_target(parser):
    program = parser.parse(SHADER)
    assert apply_strategy(assignment_to_strategy('nothing'), program) == []


def test_declaration_of_slot(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(declaration_of_strategy('base'), program)
    assert [s.id for s in slots] == ['filler_base']
    slots[0].mutate(parser.parse_expression('vec4(0.25)'))
    assert 'vec4 base = vec4(0.25);' in squash(generate(program))


# ============================================================================
# 4. namedAttribute / variable / hardCode
# ============================================================================

def test_named_attribute_replaces_every_read(parser):
    program = parser.parse(SHADER)
    slots = apply_strategy(named_attribute_strategy('vUv'), program)
    assert [s.id for s in slots] == ['filler_vUv']
    assert slots[0].input.bakeable
    slots[0].mutate(parser.parse_expression('uv2'))
    output = squash(generate(program))
    assert 'texture(image, uv2)' in output
    assert 'texture2D(mask, uv2 * speed)' in output


def test_variable_slots_first_reference_wins(parser):
    program = parser.parse("float f() { return a * a; }")
    slots = find_inputs([variable_strategy()], program)
    assert list(slots) == ['filler_a']
    slots['filler_a'].mutate(parser.parse_expression('b + 1.0'))
    assert 'return (b + 1.0) * a;' in squash(generate(program))


def test_variable_slots_skip_callees(parser):
    program = parser.parse("float f() { return sin(x); }")
    slots = find_inputs([variable_strategy()], program)
    assert list(slots) == ['filler_x']


def test_hard_code_has_no_slots(parser):
    program = parser.parse(SHADER)
    assert apply_strategy(hard_code_strategy(), program) == []


# ============================================================================
# 5. find_inputs and renamed trees
# ============================================================================

def test_find_inputs_first_strategy_wins(parser):
    program = parser.parse(SHADER)
    slots = find_inputs([assignment_to_strategy('color'), declaration_of_strategy('color')], program)
    assert list(slots) == ['filler_color']
    slots['filler_color'].mutate(parser.parse_expression('vec4(9.0)'))
    output = squash(generate(program))
    assert 'color = vec4(9.0);' in output
    assert 'out vec4 color;' in output


def test_find_inputs_falls_through_empty_strategy(parser):
    program = parser.parse(SHADER)
    slots = find_inputs([assignment_to_strategy('base'), declaration_of_strategy('base')], program)
    assert list(slots) == ['filler_base']
    slots['filler_base'].mutate(parser.parse_expression('vec4(9.0)'))
    assert 'vec4 base = vec4(9.0);' in squash(generate(program))


def test_slot_ids_use_original_names_after_renaming(parser):
    program = parser.parse(SHADER)
    names = rename_bindings(program, {'vUv'}, '3')
    slots = find_inputs([uniform_strategy(), texture2d_strategy()], program, names)
    assert 'uniform_speed' in slots
    assert slots['texture2d_0'].input.name == 'image'

    slots['uniform_speed'].mutate(parser.parse_expression('4.0'))
    output = squash(generate(program))
    assert 'speed_3' not in output
    assert 'vUv * 4.0' in output


def test_assignment_to_follows_renamed_target(parser):
    program = parser.parse(SHADER)
    names = rename_bindings(program, set(), '3')
    slots = find_inputs([assignment_to_strategy('color')], program, names)
    slots['filler_color'].mutate(parser.parse_expression('vec4(1.0)'))
    assert 'color_3 = vec4(1.0);' in squash(generate(program))


def test_strategy_types():
    assert uniform_strategy().type is StrategyType.UNIFORM
    assert assignment_to_strategy('x').config == {'assign_to': 'x'}
    assert named_attribute_strategy('position').config == {'attribute_name': 'position'}
