"""
Hygiene renamer: suffixes a node's top-level names so independently written
shaders can be merged into one program without collisions.

Renamed (with `_<suffix>`):
- global variables declared by the node, and undeclared free identifiers
- functions declared by the node (a caller-supplied map wins, e.g.
  main -> main_2)
- struct types declared by the node, including constructor calls

Never renamed:
- names in the engine preserve set (viewMatrix, vUv, time, ...)
- identifiers flagged do_not_descope by an entry-point rewrite
- locals and parameters, which shadow globals
- gl_* built-ins, built-in functions, interface block members, fields
- macros defined by a top-level #define left in the source
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..errors import UnsupportedBindingKind
from ..parser import ast_nodes as AST

logger = logging.getLogger(__name__)

BUILTIN_PREFIX = 'gl_'

DEFINE_RE = re.compile(r"^#\s*define\s+(\w+)")


def mangle_name(name: str, suffix) -> str:
    return f"{name}_{suffix}"


@dataclass
class NameMap:
    """
    Original -> renamed names for one node.

    Also records entry-point rewrites (e.g. the fragment output variable
    becoming a function local) so strategies can find things by the name
    the author wrote.
    """
    renamed: Dict[str, str] = field(default_factory=dict)

    def get(self, name: str) -> str:
        """Current name for an original name (unchanged if never renamed)."""
        return self.renamed.get(name, name)

    def original(self, name: str) -> str:
        """Original name for a current name."""
        for original, current in self.renamed.items():
            if current == name:
                return original
        return name

    def add(self, original: str, current: str):
        # Chain renames: a -> b then b -> c records a -> c
        for key, value in self.renamed.items():
            if value == original:
                self.renamed[key] = current
                return
        self.renamed[original] = current


class ScopeRenamer:
    """
    Scope-aware renaming visitor.

    Usage:
        renamer = ScopeRenamer(preserve={'time'}, suffix='2',
                               function_names={'main': 'main_2'})
        names = renamer.rename(program)
    """

    def __init__(self, preserve: Set[str], suffix, function_names: Optional[Dict[str, str]] = None,
                 mangle: bool = True, names: Optional[NameMap] = None):
        self.preserve = set(preserve)
        self.suffix = suffix
        self.function_names = dict(function_names or {})
        self.mangle = mangle
        self.names = names if names is not None else NameMap()

        self.scopes: List[Set[str]] = []
        self.var_map: Dict[str, str] = {}
        self.fn_map: Dict[str, str] = {}
        self.struct_map: Dict[str, str] = {}
        self.unrenamed: Set[str] = set()

    # ========================================================================
    # Entry
    # ========================================================================

    def rename(self, program: AST.Program) -> NameMap:
        self._collect_top_level(program)
        program.accept(self)
        logger.debug(f"Renamed {len(self.names.renamed)} names with suffix _{self.suffix}")
        return self.names

    def _renamable(self, name: str) -> bool:
        return (self.mangle and name not in self.preserve
                and not name.startswith(BUILTIN_PREFIX))

    def _collect_top_level(self, program: AST.Program):
        """Build rename maps from the node's top-level declarations."""
        for stmt in program.statements:
            if isinstance(stmt, AST.Declaration):
                if stmt.type.struct is not None and stmt.type.struct.name:
                    self._add_struct(stmt.type.struct.name)
                for declarator in stmt.declarators:
                    if self._renamable(declarator.name):
                        self.var_map[declarator.name] = mangle_name(declarator.name, self.suffix)
                    else:
                        self.unrenamed.add(declarator.name)
            elif isinstance(stmt, AST.StructDefinition) and stmt.name:
                self._add_struct(stmt.name)
            elif isinstance(stmt, (AST.FunctionDefinition, AST.FunctionDeclaration)):
                name = stmt.prototype.name
                if name in self.function_names:
                    self.fn_map[name] = self.function_names[name]
                elif self._renamable(name):
                    self.fn_map[name] = mangle_name(name, self.suffix)
            elif isinstance(stmt, AST.Preprocessor):
                match = DEFINE_RE.match(stmt.line)
                if match:
                    self.unrenamed.add(match.group(1))
            elif isinstance(stmt, AST.InterfaceBlock):
                # Block members are bound by the engine by name
                self.unrenamed.add(stmt.name)
                if stmt.instance is not None:
                    self.unrenamed.add(stmt.instance.name)
                for block_field in stmt.fields:
                    self.unrenamed.update(d.name for d in block_field.declarators)

    def _add_struct(self, name: str):
        if self._renamable(name):
            self.struct_map[name] = mangle_name(name, self.suffix)

    def _is_local(self, name: str) -> bool:
        return any(name in scope for scope in self.scopes)

    def _bind_local(self, name: Optional[str]):
        if name is not None and self.scopes:
            self.scopes[-1].add(name)

    def generic_visit(self, node: AST.SyntaxNode):
        raise UnsupportedBindingKind(getattr(node, 'name', '?'), node.__class__.__name__)

    # ========================================================================
    # References
    # ========================================================================

    def _variable_reference(self, node: AST.Identifier):
        name = node.name
        if node.do_not_descope or self._is_local(name) or name in self.unrenamed:
            return
        new_name = self.var_map.get(name)
        if new_name is None and self._renamable(name) \
                and name not in self.fn_map and name not in self.struct_map:
            # Free identifier: a global the engine injects
            new_name = mangle_name(name, self.suffix)
            self.var_map[name] = new_name
        if new_name is not None and new_name != name:
            node.name = new_name
            self.names.add(name, new_name)

    def _function_reference(self, call: AST.CallExpression):
        """
        Rename the callee of a call to a node-declared function or struct.

        Array constructors (Light[2](...)) rename the inner type name;
        method calls (v.length()) rename their receiver as a variable.
        """
        callee = call.callee
        while isinstance(callee, AST.SubscriptExpression):
            callee.index.accept(self)
            callee = callee.argument
        if isinstance(callee, AST.FieldExpression):
            callee.argument.accept(self)
            return
        if not isinstance(callee, AST.Identifier):
            raise UnsupportedBindingKind(getattr(callee, 'text', '?'), callee.__class__.__name__)

        name = callee.name
        new_name = self.fn_map.get(name) or self.struct_map.get(name)
        if new_name is not None and not self._is_local(name):
            callee.name = new_name
            self.names.add(name, new_name)

    def _type_reference(self, node: AST.FullType):
        if node.struct is not None:
            node.struct.accept(self)
        elif node.name in self.struct_map:
            self.names.add(node.name, self.struct_map[node.name])
            node.name = self.struct_map[node.name]
        for size in node.array_sizes:
            if size is not None:
                size.accept(self)

    def _array_sizes(self, sizes):
        for size in sizes:
            if size is not None:
                size.accept(self)

    # ========================================================================
    # Top-level
    # ========================================================================

    def visit_Program(self, node: AST.Program):
        for stmt in node.statements:
            stmt.accept(self)

    def visit_Preprocessor(self, node):
        pass

    def visit_Precision(self, node):
        pass

    def visit_RawStatement(self, node):
        pass

    def visit_StructDefinition(self, node: AST.StructDefinition):
        if node.name in self.struct_map:
            self.names.add(node.name, self.struct_map[node.name])
            node.name = self.struct_map[node.name]
        for field_decl in node.fields:
            self._type_reference(field_decl.type)
            for declarator in field_decl.declarators:
                self._array_sizes(declarator.array_sizes)

    def visit_InterfaceBlock(self, node: AST.InterfaceBlock):
        for field_decl in node.fields:
            self._type_reference(field_decl.type)

    def visit_Declaration(self, node: AST.Declaration):
        """
        Global declarators are renamed; local ones join the current scope.

        The initializer is visited before the name is bound.
        """
        self._type_reference(node.type)
        for declarator in node.declarators:
            self._array_sizes(declarator.array_sizes)
            if declarator.initializer is not None:
                declarator.initializer.accept(self)
            if self.scopes:
                self._bind_local(declarator.name)
            elif declarator.name in self.var_map:
                new_name = self.var_map[declarator.name]
                self.names.add(declarator.name, new_name)
                declarator.name = new_name

    def _prototype(self, node: AST.FunctionPrototype):
        if node.name in self.fn_map:
            self.names.add(node.name, self.fn_map[node.name])
            node.name = self.fn_map[node.name]
        self._type_reference(node.return_type)
        for parameter in node.parameters:
            parameter.accept(self)

    def visit_Parameter(self, node: AST.Parameter):
        self._type_reference(node.type)
        self._array_sizes(node.array_sizes)
        self._bind_local(node.name)

    def visit_FunctionDeclaration(self, node: AST.FunctionDeclaration):
        self.scopes.append(set())
        self._prototype(node.prototype)
        self.scopes.pop()

    def visit_FunctionDefinition(self, node: AST.FunctionDefinition):
        # Parameters and the outermost block share one scope
        self.scopes.append(set())
        self._prototype(node.prototype)
        for stmt in node.body.statements:
            stmt.accept(self)
        self.scopes.pop()

    # ========================================================================
    # Statements
    # ========================================================================

    def visit_CompoundStatement(self, node: AST.CompoundStatement):
        self.scopes.append(set())
        for stmt in node.statements:
            stmt.accept(self)
        self.scopes.pop()

    def visit_ExpressionStatement(self, node: AST.ExpressionStatement):
        if node.expression is not None:
            node.expression.accept(self)

    def visit_ReturnStatement(self, node: AST.ReturnStatement):
        if node.value is not None:
            node.value.accept(self)

    def visit_JumpStatement(self, node):
        pass

    def visit_IfStatement(self, node: AST.IfStatement):
        node.condition.accept(self)
        node.consequence.accept(self)
        if node.alternative is not None:
            node.alternative.accept(self)

    def visit_ForStatement(self, node: AST.ForStatement):
        self.scopes.append(set())
        for part in (node.initializer, node.condition, node.update, node.body):
            if part is not None:
                part.accept(self)
        self.scopes.pop()

    def visit_WhileStatement(self, node: AST.WhileStatement):
        node.condition.accept(self)
        node.body.accept(self)

    def visit_DoStatement(self, node: AST.DoStatement):
        node.body.accept(self)
        node.condition.accept(self)

    def visit_SwitchStatement(self, node: AST.SwitchStatement):
        node.condition.accept(self)
        self.scopes.append(set())
        for case in node.cases:
            case.accept(self)
        self.scopes.pop()

    def visit_CaseStatement(self, node: AST.CaseStatement):
        if node.value is not None:
            node.value.accept(self)
        for stmt in node.statements:
            stmt.accept(self)

    # ========================================================================
    # Expressions
    # ========================================================================

    def visit_Identifier(self, node: AST.Identifier):
        self._variable_reference(node)

    def visit_Literal(self, node):
        pass

    def visit_RawExpression(self, node):
        pass

    def visit_CallExpression(self, node: AST.CallExpression):
        self._function_reference(node)
        for arg in node.arguments:
            arg.accept(self)

    def visit_FieldExpression(self, node: AST.FieldExpression):
        node.argument.accept(self)

    def visit_SubscriptExpression(self, node: AST.SubscriptExpression):
        node.argument.accept(self)
        node.index.accept(self)

    def visit_BinaryExpression(self, node: AST.BinaryExpression):
        node.left.accept(self)
        node.right.accept(self)

    def visit_AssignmentExpression(self, node: AST.AssignmentExpression):
        node.left.accept(self)
        node.right.accept(self)

    def visit_UnaryExpression(self, node: AST.UnaryExpression):
        node.operand.accept(self)

    def visit_ConditionalExpression(self, node: AST.ConditionalExpression):
        node.condition.accept(self)
        node.consequence.accept(self)
        node.alternative.accept(self)

    def visit_ParenthesizedExpression(self, node: AST.ParenthesizedExpression):
        node.expression.accept(self)

    def visit_SequenceExpression(self, node: AST.SequenceExpression):
        for expr in node.expressions:
            expr.accept(self)

    def visit_InitializerList(self, node: AST.InitializerList):
        for element in node.elements:
            element.accept(self)


def rename_bindings(program: AST.Program, preserve: Set[str], suffix,
                    function_names: Optional[Dict[str, str]] = None,
                    mangle: bool = True, names: Optional[NameMap] = None) -> NameMap:
    """
    Rename a node's top-level bindings in place.

    Args:
        program: The node's tree
        preserve: Names never renamed
        suffix: Appended as `_<suffix>`
        function_names: Forced function renames applied before suffixing
        mangle: False renames only the functions in function_names
        names: NameMap to extend (entry-point renames recorded earlier)

    Raises:
        UnsupportedBindingKind: for a reference the renamer cannot rewrite
    """
    return ScopeRenamer(preserve, suffix, function_names, mangle, names).rename(program)
