"""
Shader sections: top-level statements bucketed so that many programs can be
merged into one while respecting GLSL's required statement ordering.

    split(program)            -> ShaderSections
    merge(a, b)               -> ShaderSections (a's statements first)
    without_existing_ins(a,b) -> b minus `in` declarators a already has
    sections_to_program(...)  -> Program, deduplicated and ordered
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from ..parser import ast_nodes as AST

logger = logging.getLogger(__name__)

PRECISION_RANK = {'lowp': 0, 'mediump': 1, 'highp': 2}

DEFAULT_VERSION = '#version 300 es'


@dataclass
class MergeOptions:
    """
    Engine-level switches for program assembly.

    Attributes:
        include_precisions: Emit the merged precision statements
        include_version: Emit (or synthesize) the #version line
    """
    include_precisions: bool = True
    include_version: bool = True


@dataclass
class ShaderSections:
    """
    Top-level statements of one or more programs, by category.

    existing_ins always holds exactly the names declared by in_statements.
    """
    version: List[AST.Preprocessor] = field(default_factory=list)
    precision: List[AST.Precision] = field(default_factory=list)
    preprocessor: List[AST.Preprocessor] = field(default_factory=list)
    structs: List[AST.SyntaxNode] = field(default_factory=list)
    in_statements: List[AST.SyntaxNode] = field(default_factory=list)
    existing_ins: Set[str] = field(default_factory=set)
    out_statements: List[AST.SyntaxNode] = field(default_factory=list)
    uniforms: List[AST.SyntaxNode] = field(default_factory=list)
    program: List[AST.SyntaxNode] = field(default_factory=list)


def _qualifiers(stmt: AST.SyntaxNode) -> List[str]:
    if isinstance(stmt, AST.Declaration):
        return stmt.type.qualifiers
    if isinstance(stmt, AST.InterfaceBlock):
        return stmt.qualifiers
    return []


def declared_names(stmt: AST.SyntaxNode) -> List[str]:
    """Names a top-level in/out/uniform statement introduces."""
    if isinstance(stmt, AST.Declaration):
        return [d.name for d in stmt.declarators]
    if isinstance(stmt, AST.InterfaceBlock):
        if stmt.instance is not None:
            return [stmt.instance.name]
        return [d.name for f in stmt.fields for d in f.declarators]
    return []


def is_version(stmt: AST.SyntaxNode) -> bool:
    return isinstance(stmt, AST.Preprocessor) and stmt.line.split()[0] == '#version'


def split(program: AST.Program) -> ShaderSections:
    """
    Partition a program's top-level statements into sections.

    Predicates are checked in order and are mutually exclusive: version,
    precision, other preprocessor lines, struct definitions, `in`, `out`
    and `uniform` declarations; everything else is program.
    """
    sections = ShaderSections()
    for stmt in program.statements:
        qualifiers = _qualifiers(stmt)
        if is_version(stmt):
            sections.version.append(stmt)
        elif isinstance(stmt, AST.Precision):
            sections.precision.append(stmt)
        elif isinstance(stmt, AST.Preprocessor):
            sections.preprocessor.append(stmt)
        elif isinstance(stmt, AST.StructDefinition):
            sections.structs.append(stmt)
        elif 'in' in qualifiers:
            sections.in_statements.append(stmt)
            sections.existing_ins.update(declared_names(stmt))
        elif 'out' in qualifiers:
            sections.out_statements.append(stmt)
        elif 'uniform' in qualifiers:
            sections.uniforms.append(stmt)
        else:
            sections.program.append(stmt)
    return sections


def merge(a: ShaderSections, b: ShaderSections) -> ShaderSections:
    """
    Concatenate every bucket, a first. Duplicates are kept.

    Callers drop already-declared `in` names first with without_existing_ins,
    so the first discovered variant of a varying wins.
    """
    return ShaderSections(
        version=a.version + b.version,
        precision=a.precision + b.precision,
        preprocessor=a.preprocessor + b.preprocessor,
        structs=a.structs + b.structs,
        in_statements=a.in_statements + b.in_statements,
        existing_ins=a.existing_ins | b.existing_ins,
        out_statements=a.out_statements + b.out_statements,
        uniforms=a.uniforms + b.uniforms,
        program=a.program + b.program,
    )


def without_existing_ins(existing: ShaderSections, incoming: ShaderSections) -> ShaderSections:
    """
    Return incoming with every `in` declarator already in existing removed.

    A declaration whose declarators are all known is dropped whole.
    Incoming statements are not mutated.
    """
    kept = []
    for stmt in incoming.in_statements:
        if isinstance(stmt, AST.Declaration):
            fresh = [d for d in stmt.declarators if d.name not in existing.existing_ins]
            if not fresh:
                logger.debug(f"Dropping duplicate in declaration {declared_names(stmt)}")
                continue
            if len(fresh) != len(stmt.declarators):
                stmt = AST.Declaration(type=stmt.type, declarators=fresh, location=stmt.location)
            kept.append(stmt)
        elif set(declared_names(stmt)) - existing.existing_ins:
            kept.append(stmt)

    result = ShaderSections(**{k: v for k, v in vars(incoming).items()})
    result.in_statements = kept
    result.existing_ins = {name for stmt in kept for name in declared_names(stmt)}
    return result


# ============================================================================
# Deduplication
# ============================================================================

def highest_precisions(statements: List[AST.Precision]) -> List[AST.Precision]:
    """Keep one precision statement per type, at the highest precision seen."""
    best: Dict[str, AST.Precision] = {}
    for stmt in statements:
        current = best.get(stmt.type_name)
        if current is None or PRECISION_RANK[stmt.qualifier] > PRECISION_RANK[current.qualifier]:
            best[stmt.type_name] = stmt
    return list(best.values())


def dedupe_version(statements: List[AST.Preprocessor]) -> Optional[AST.Preprocessor]:
    return statements[0] if statements else None


def dedupe_lines(statements: List[AST.Preprocessor]) -> List[AST.Preprocessor]:
    seen = set()
    result = []
    for stmt in statements:
        if stmt.line not in seen:
            seen.add(stmt.line)
            result.append(stmt)
    return result


def dedupe_structs(statements: List[AST.SyntaxNode]) -> List[AST.SyntaxNode]:
    seen = set()
    result = []
    for stmt in statements:
        name = getattr(stmt, 'name', None)
        if name is not None and name in seen:
            continue
        seen.add(name)
        result.append(stmt)
    return result


def dedupe_qualified_statements(statements: List[AST.SyntaxNode]) -> List[AST.SyntaxNode]:
    """
    Drop repeated declarator names and regroup declarators by full type.

        uniform float a; uniform float b; uniform float a;
        -> uniform float a, b;

    Interface blocks are kept once per block name.
    """
    seen_names: Set[str] = set()
    seen_blocks: Set[str] = set()
    grouped: Dict[Tuple, AST.Declaration] = {}
    result: List[AST.SyntaxNode] = []

    for stmt in statements:
        if isinstance(stmt, AST.InterfaceBlock):
            if stmt.name in seen_blocks:
                continue
            seen_blocks.add(stmt.name)
            seen_names.update(declared_names(stmt))
            result.append(stmt)
            continue
        if not isinstance(stmt, AST.Declaration):
            result.append(stmt)
            continue

        key = (tuple(stmt.type.qualifiers), stmt.type.name)
        for declarator in stmt.declarators:
            if declarator.name in seen_names:
                continue
            seen_names.add(declarator.name)
            target = grouped.get(key)
            if target is None or stmt.type.struct is not None:
                target = AST.Declaration(type=stmt.type, declarators=[], location=stmt.location)
                grouped[key] = target
                result.append(target)
            target.declarators.append(declarator)
    return result


def sections_to_program(sections: ShaderSections,
                        options: Optional[MergeOptions] = None) -> AST.Program:
    """
    Assemble merged sections into one ordered, deduplicated program.

    Order: version, precision, preprocessor, structs, ins, outs, uniforms,
    program.
    """
    options = options or MergeOptions()
    statements: List[AST.SyntaxNode] = []

    if options.include_version:
        version = dedupe_version(sections.version)
        statements.append(version or AST.Preprocessor(line=DEFAULT_VERSION))
    if options.include_precisions:
        statements.extend(highest_precisions(sections.precision))

    statements.extend(dedupe_lines(sections.preprocessor))
    statements.extend(dedupe_structs(sections.structs))
    statements.extend(sections.in_statements)
    statements.extend(dedupe_qualified_statements(sections.out_statements))
    statements.extend(dedupe_qualified_statements(sections.uniforms))
    statements.extend(sections.program)

    return AST.Program(statements=statements)
