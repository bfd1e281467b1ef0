"""
GLSL Parser - tree-sitter front end producing the mutable syntax tree.

Architecture:
    GLSL source -> lift directives/precision -> tree-sitter-glsl CST
                -> GLSLParser builders -> ast_nodes.Program

tree-sitter-glsl inherits the C grammar's preprocessor handling, which
wraps everything between #ifdef/#endif into one opaque node. Top-level
directives and `precision` statements are therefore lifted out of the
text before parsing (their lines are blanked so row numbers survive)
and merged back by position afterwards.
"""

import logging
import re
from typing import List, Optional, Tuple

import tree_sitter_glsl as tsglsl
from tree_sitter import Language, Parser

from ..errors import GLSLSyntaxError
from ..preprocessor.preprocessor_transformer import strip_comments
from . import ast_nodes as AST

logger = logging.getLogger(__name__)

GLSL_LANGUAGE = Language(tsglsl.language())

PRECISION_RE = re.compile(r'\bprecision\s+(lowp|mediump|highp)\s+(\w+)\s*;')

# Qualifier keywords tree-sitter may expose as bare tokens
QUALIFIER_KEYWORDS = {
    'const', 'in', 'out', 'inout', 'uniform', 'attribute', 'varying',
    'buffer', 'shared', 'centroid', 'sample', 'patch', 'smooth', 'flat',
    'noperspective', 'invariant', 'precise', 'highp', 'mediump', 'lowp',
    'coherent', 'volatile', 'restrict', 'readonly', 'writeonly',
}

QUALIFIER_NODE_TYPES = {
    'type_qualifier', 'storage_class_specifier', 'layout_specification',
    'extension_storage_class',
}

TYPE_NODE_TYPES = {
    'primitive_type', 'type_identifier', 'sized_type_specifier', 'identifier',
}

CONDITION_WRAPPERS = ('parenthesized_expression', 'condition_clause')

EXPRESSION_TARGET = '__expression__'


class GLSLParser:
    """
    Parses GLSL source into an ast_nodes.Program.

    Usage:
        parser = GLSLParser()
        program = parser.parse(source)
        expr = parser.parse_expression('texture(map, vUv).rgb')
    """

    def __init__(self):
        self._parser = Parser(GLSL_LANGUAGE)
        self._source = b''

    # ========================================================================
    # Public API
    # ========================================================================

    def parse(self, source: str) -> AST.Program:
        """
        Parse a complete shader.

        Raises:
            GLSLSyntaxError: if tree-sitter reports an error or missing node
        """
        text, lifted = self._lift_top_level_directives(strip_comments(source))
        self._source = text.encode('utf8')
        tree = self._parser.parse(self._source)
        root = tree.root_node

        if root.has_error:
            bad = self._find_error(root)
            where = tuple(bad.start_point) if bad is not None else None
            raise GLSLSyntaxError("Syntax error in GLSL source", where)

        items: List[Tuple[Tuple[int, int], AST.SyntaxNode]] = list(lifted)
        for child in root.named_children:
            built = self._build_top_level(child)
            if built is not None:
                items.append((tuple(child.start_point), built))

        items.sort(key=lambda item: item[0])
        program = AST.Program(statements=[node for _, node in items], location=(0, 0))
        logger.debug(f"Parsed {len(program.statements)} top-level statements")
        return program

    def parse_expression(self, text: str) -> AST.SyntaxNode:
        """
        Parse a single GLSL expression.

        The text is parsed as the parenthesized right side of an assignment,
        so `x * y` cannot be read as a declaration. The wrapping parentheses
        are dropped again; the author's own ones are kept.
        """
        statement = self.parse_statement(f"{EXPRESSION_TARGET} = ({text});")
        expression = getattr(statement, 'expression', None)
        if not isinstance(expression, AST.AssignmentExpression) \
                or not isinstance(expression.right, AST.ParenthesizedExpression):
            raise GLSLSyntaxError(f"Not an expression: {text}")
        return expression.right.expression

    def parse_statement(self, text: str) -> AST.SyntaxNode:
        """Parse a single statement as it would appear inside a function body."""
        program = self.parse(f"void __parse__() {{\n{text}\n}}")
        body = program.statements[0].body.statements
        if len(body) != 1:
            raise GLSLSyntaxError(f"Expected exactly one statement: {text}")
        return body[0]

    # ========================================================================
    # Source pre-pass
    # ========================================================================

    def _lift_top_level_directives(self, text: str):
        """
        Pull top-level preprocessor lines and precision statements out.

        Returns:
            (remaining_text, [(location, node), ...])
        """
        lines = text.split('\n')
        lifted = []
        depth = 0
        row = 0
        while row < len(lines):
            line = lines[row]
            stripped = line.strip()
            if depth == 0 and stripped.startswith('#'):
                start = row
                parts = [stripped]
                while parts[-1].endswith('\\') and row + 1 < len(lines):
                    parts[-1] = parts[-1][:-1].rstrip()
                    row += 1
                    parts.append(lines[row].strip())
                directive = ' '.join(p for p in parts if p)
                directive = re.sub(r'^#\s+', '#', directive)
                lifted.append(((start, 0), AST.Preprocessor(line=directive, location=(start, 0))))
                for r in range(start, row + 1):
                    lines[r] = ''
                row += 1
                continue

            if depth == 0 and 'precision' in line:
                def _lift(match, _row=row):
                    col = match.start()
                    lifted.append(((_row, col), AST.Precision(
                        qualifier=match.group(1),
                        type_name=match.group(2),
                        location=(_row, col)
                    )))
                    return ' ' * len(match.group(0))
                line = PRECISION_RE.sub(_lift, line)
                lines[row] = line

            depth += line.count('{') - line.count('}')
            row += 1
        return '\n'.join(lines), lifted

    def _find_error(self, node):
        """Locate the first ERROR or missing node, depth first."""
        if node.type == 'ERROR' or node.is_missing:
            return node
        for child in node.children:
            if child.has_error or child.is_missing:
                found = self._find_error(child)
                if found is not None:
                    return found
        return None

    # ========================================================================
    # Helpers
    # ========================================================================

    def _text(self, node) -> str:
        return self._source[node.start_byte:node.end_byte].decode('utf8')

    def _loc(self, node) -> tuple:
        return tuple(node.start_point)

    def _qualifiers(self, node) -> List[str]:
        """Collect qualifier keywords and layout specifications under node."""
        qualifiers = []
        for child in node.children:
            if child.type == 'layout_specification':
                qualifiers.append(' '.join(self._text(child).split()))
            elif child.type in QUALIFIER_NODE_TYPES:
                qualifiers.extend(self._text(child).split())
            elif not child.is_named and child.type in QUALIFIER_KEYWORDS:
                qualifiers.append(child.type)
        return qualifiers

    def _unwrap_condition(self, node):
        """Strip the syntactic parentheses of if/while/switch conditions."""
        while node is not None and node.type in CONDITION_WRAPPERS and node.named_children:
            node = node.child_by_field_name('value') or node.named_children[0]
        return node

    def _full_type(self, node) -> AST.FullType:
        """Build the FullType of a declaration, parameter or function."""
        type_node = node.child_by_field_name('type')
        full_type = AST.FullType(qualifiers=self._qualifiers(node), location=self._loc(node))
        if type_node is None:
            return full_type
        if type_node.type == 'struct_specifier':
            struct = self._build_struct_specifier(type_node)
            full_type.name = struct.name
            if struct.fields:
                full_type.struct = struct
        else:
            full_type.name = ' '.join(self._text(type_node).split())
        return full_type

    def _build_declarator(self, node) -> AST.Declarator:
        """identifier, array_declarator or init_declarator -> Declarator."""
        if node.type == 'init_declarator':
            declarator = self._build_declarator(node.child_by_field_name('declarator'))
            value = node.child_by_field_name('value')
            if value is not None:
                declarator.initializer = self._build_expression(value)
            return declarator
        if node.type == 'array_declarator':
            declarator = self._build_declarator(node.child_by_field_name('declarator'))
            size = node.child_by_field_name('size')
            declarator.array_sizes.append(self._build_expression(size) if size is not None else None)
            return declarator
        return AST.Declarator(name=self._text(node), location=self._loc(node))

    def _declarator_nodes(self, node) -> list:
        declarators = node.children_by_field_name('declarator')
        if declarators:
            return declarators
        return [c for c in node.named_children
                if c.type in ('identifier', 'init_declarator', 'array_declarator')]

    # ========================================================================
    # Top-level
    # ========================================================================

    def _build_top_level(self, node) -> Optional[AST.SyntaxNode]:
        builders = {
            'function_definition': self._build_function_definition,
            'declaration': self._build_declaration,
            'struct_specifier': self._build_struct_specifier,
        }
        builder = builders.get(node.type)
        if builder is not None:
            return builder(node)
        if node.type in ('comment', ';'):
            return None
        logger.debug(f"Passing through top-level {node.type} as raw text")
        return AST.RawStatement(text=self._text(node).strip(), location=self._loc(node))

    def _build_function_definition(self, node) -> AST.FunctionDefinition:
        prototype = self._build_prototype(node, node.child_by_field_name('declarator'))
        body = self._build_compound_statement(node.child_by_field_name('body'))
        return AST.FunctionDefinition(prototype=prototype, body=body, location=self._loc(node))

    def _build_prototype(self, node, declarator) -> AST.FunctionPrototype:
        name_node = declarator.child_by_field_name('declarator')
        params_node = declarator.child_by_field_name('parameters')
        parameters = []
        if params_node is not None:
            for param in params_node.named_children:
                if param.type == 'parameter_declaration':
                    parameters.append(self._build_parameter(param))
        return AST.FunctionPrototype(
            return_type=self._full_type(node),
            name=self._text(name_node),
            parameters=parameters,
            location=self._loc(node)
        )

    def _build_parameter(self, node) -> AST.Parameter:
        parameter = AST.Parameter(type=self._full_type(node), location=self._loc(node))
        declarator = node.child_by_field_name('declarator')
        if declarator is not None:
            built = self._build_declarator(declarator)
            parameter.name = built.name
            parameter.array_sizes = built.array_sizes
        return parameter

    def _build_declaration(self, node) -> AST.SyntaxNode:
        """
        Build a declaration.

        Returns a FunctionDeclaration for prototypes, an InterfaceBlock for
        `uniform Name { ... }` blocks, a StructDefinition for a bare struct,
        and a Declaration otherwise.
        """
        declarator_nodes = self._declarator_nodes(node)
        for declarator in declarator_nodes:
            if declarator.type == 'function_declarator':
                return AST.FunctionDeclaration(
                    prototype=self._build_prototype(node, declarator),
                    location=self._loc(node)
                )

        if any(d.type == 'pointer_declarator' for d in declarator_nodes):
            return self._build_product_statement(node, declarator_nodes)

        block_fields = [c for c in node.named_children if c.type == 'field_declaration_list']
        if block_fields:
            return self._build_interface_block(node, block_fields[0])

        full_type = self._full_type(node)
        declarators = [self._build_declarator(d) for d in declarator_nodes]
        if not declarators and full_type.struct is not None and not full_type.qualifiers:
            return full_type.struct
        return AST.Declaration(type=full_type, declarators=declarators, location=self._loc(node))

    def _build_product_statement(self, node, declarator_nodes) -> AST.ExpressionStatement:
        """
        `a * b;` as a statement.

        The C grammar reads it as a pointer declaration of `b`. GLSL has no
        pointers, so it is rebuilt as the product it is.
        """
        type_node = node.child_by_field_name('type')
        declarator = declarator_nodes[0]
        operand = declarator.child_by_field_name('declarator')
        if (len(declarator_nodes) != 1 or self._qualifiers(node) or type_node is None
                or type_node.type not in ('type_identifier', 'identifier')
                or operand is None or operand.type != 'identifier'):
            raise GLSLSyntaxError("Pointer declarations are not valid GLSL",
                                  tuple(declarator.start_point))
        product = AST.BinaryExpression(
            operator='*',
            left=AST.Identifier(name=self._text(type_node), location=self._loc(type_node)),
            right=self._build_identifier(operand),
            location=self._loc(node)
        )
        return AST.ExpressionStatement(expression=product, location=self._loc(node))

    def _build_interface_block(self, node, field_list) -> AST.InterfaceBlock:
        block = AST.InterfaceBlock(qualifiers=self._qualifiers(node), location=self._loc(node))
        for child in node.named_children:
            if child.type in QUALIFIER_NODE_TYPES:
                continue
            if child.start_byte < field_list.start_byte and child.type in TYPE_NODE_TYPES:
                block.name = self._text(child)
            elif child.start_byte > field_list.start_byte and child.type in (
                    'identifier', 'array_declarator', 'field_identifier'):
                block.instance = self._build_declarator(child)
        block.fields = self._build_field_list(field_list)
        return block

    def _build_struct_specifier(self, node) -> AST.StructDefinition:
        name_node = node.child_by_field_name('name')
        body = node.child_by_field_name('body')
        return AST.StructDefinition(
            name=self._text(name_node) if name_node is not None else None,
            fields=self._build_field_list(body) if body is not None else [],
            location=self._loc(node)
        )

    def _build_field_list(self, node) -> List[AST.Declaration]:
        fields = []
        for field_decl in node.named_children:
            if field_decl.type not in ('field_declaration', 'declaration'):
                continue
            declarators = [
                self._build_declarator(d) for d in self._declarator_nodes(field_decl)
            ] or [
                self._build_declarator(c) for c in field_decl.named_children
                if c.type == 'field_identifier'
            ]
            fields.append(AST.Declaration(
                type=self._full_type(field_decl),
                declarators=declarators,
                location=self._loc(field_decl)
            ))
        return fields

    # ========================================================================
    # Statements
    # ========================================================================

    def _build_statement(self, node) -> Optional[AST.SyntaxNode]:
        builders = {
            'compound_statement': self._build_compound_statement,
            'declaration': self._build_declaration,
            'expression_statement': self._build_expression_statement,
            'return_statement': self._build_return_statement,
            'if_statement': self._build_if_statement,
            'for_statement': self._build_for_statement,
            'while_statement': self._build_while_statement,
            'do_statement': self._build_do_statement,
            'switch_statement': self._build_switch_statement,
            'break_statement': self._build_jump_statement,
            'continue_statement': self._build_jump_statement,
            'discard_statement': self._build_jump_statement,
        }
        builder = builders.get(node.type)
        if builder is not None:
            return builder(node)
        if node.type in ('comment', ';'):
            return None
        logger.debug(f"Passing through {node.type} as raw text")
        return AST.RawStatement(text=self._text(node).strip(), location=self._loc(node))

    def _build_compound_statement(self, node) -> AST.CompoundStatement:
        statements = []
        for child in node.named_children:
            built = self._build_statement(child)
            if built is not None:
                statements.append(built)
        return AST.CompoundStatement(statements=statements, location=self._loc(node))

    def _build_expression_statement(self, node) -> AST.SyntaxNode:
        if not node.named_children:
            return AST.ExpressionStatement(location=self._loc(node))
        expr_node = node.named_children[0]
        # Some grammar versions see `discard;` as a bare identifier
        if expr_node.type == 'identifier' and self._text(expr_node) == 'discard':
            return AST.JumpStatement(keyword='discard', location=self._loc(node))
        return AST.ExpressionStatement(
            expression=self._build_expression(expr_node),
            location=self._loc(node)
        )

    def _build_return_statement(self, node) -> AST.ReturnStatement:
        value = node.named_children[0] if node.named_children else None
        return AST.ReturnStatement(
            value=self._build_expression(value) if value is not None else None,
            location=self._loc(node)
        )

    def _build_if_statement(self, node) -> AST.IfStatement:
        alternative = node.child_by_field_name('alternative')
        if alternative is not None and alternative.type == 'else_clause':
            alternative = alternative.named_children[0] if alternative.named_children else None
        return AST.IfStatement(
            condition=self._build_expression(
                self._unwrap_condition(node.child_by_field_name('condition'))),
            consequence=self._build_statement(node.child_by_field_name('consequence')),
            alternative=self._build_statement(alternative) if alternative is not None else None,
            location=self._loc(node)
        )

    def _build_for_statement(self, node) -> AST.ForStatement:
        init_node = node.child_by_field_name('initializer')
        condition_node = node.child_by_field_name('condition')
        update_node = node.child_by_field_name('update')

        initializer = None
        if init_node is not None:
            if init_node.type == 'declaration':
                initializer = self._build_declaration(init_node)
            else:
                initializer = self._build_expression(init_node)

        return AST.ForStatement(
            initializer=initializer,
            condition=self._build_expression(condition_node) if condition_node is not None else None,
            update=self._build_expression(update_node) if update_node is not None else None,
            body=self._build_statement(node.child_by_field_name('body')),
            location=self._loc(node)
        )

    def _build_while_statement(self, node) -> AST.WhileStatement:
        return AST.WhileStatement(
            condition=self._build_expression(
                self._unwrap_condition(node.child_by_field_name('condition'))),
            body=self._build_statement(node.child_by_field_name('body')),
            location=self._loc(node)
        )

    def _build_do_statement(self, node) -> AST.DoStatement:
        return AST.DoStatement(
            body=self._build_statement(node.child_by_field_name('body')),
            condition=self._build_expression(
                self._unwrap_condition(node.child_by_field_name('condition'))),
            location=self._loc(node)
        )

    def _build_switch_statement(self, node) -> AST.SwitchStatement:
        cases = []
        body = node.child_by_field_name('body')
        for child in body.named_children:
            if child.type != 'case_statement':
                continue
            value = child.child_by_field_name('value')
            statements = []
            for stmt in child.named_children:
                if value is not None and stmt == value:
                    continue
                built = self._build_statement(stmt)
                if built is not None:
                    statements.append(built)
            cases.append(AST.CaseStatement(
                value=self._build_expression(value) if value is not None else None,
                statements=statements,
                location=self._loc(child)
            ))
        return AST.SwitchStatement(
            condition=self._build_expression(
                self._unwrap_condition(node.child_by_field_name('condition'))),
            cases=cases,
            location=self._loc(node)
        )

    def _build_jump_statement(self, node) -> AST.JumpStatement:
        keyword = node.type[:-len('_statement')]
        return AST.JumpStatement(keyword=keyword, location=self._loc(node))

    # ========================================================================
    # Expressions
    # ========================================================================

    def _build_expression(self, node) -> AST.SyntaxNode:
        builders = {
            'identifier': self._build_identifier,
            'field_identifier': self._build_identifier,
            'primitive_type': self._build_identifier,
            'type_identifier': self._build_identifier,
            'number_literal': self._build_literal,
            'true': self._build_literal,
            'false': self._build_literal,
            'binary_expression': self._build_binary_expression,
            'unary_expression': self._build_unary_expression,
            'update_expression': self._build_update_expression,
            'assignment_expression': self._build_assignment_expression,
            'conditional_expression': self._build_conditional_expression,
            'call_expression': self._build_call_expression,
            'field_expression': self._build_field_expression,
            'subscript_expression': self._build_subscript_expression,
            'parenthesized_expression': self._build_parenthesized_expression,
            'comma_expression': self._build_comma_expression,
            'initializer_list': self._build_initializer_list,
        }
        builder = builders.get(node.type)
        if builder is not None:
            return builder(node)
        logger.debug(f"Passing through expression {node.type} as raw text")
        return AST.RawExpression(text=self._text(node), location=self._loc(node))

    def _build_identifier(self, node) -> AST.Identifier:
        return AST.Identifier(name=self._text(node), location=self._loc(node))

    def _build_literal(self, node) -> AST.Literal:
        return AST.Literal(value=self._text(node), location=self._loc(node))

    def _build_binary_expression(self, node) -> AST.BinaryExpression:
        return AST.BinaryExpression(
            operator=node.child_by_field_name('operator').type,
            left=self._build_expression(node.child_by_field_name('left')),
            right=self._build_expression(node.child_by_field_name('right')),
            location=self._loc(node)
        )

    def _build_unary_expression(self, node) -> AST.UnaryExpression:
        return AST.UnaryExpression(
            operator=node.child_by_field_name('operator').type,
            operand=self._build_expression(node.child_by_field_name('argument')),
            location=self._loc(node)
        )

    def _build_update_expression(self, node) -> AST.UnaryExpression:
        operator = node.child_by_field_name('operator')
        argument = node.child_by_field_name('argument')
        return AST.UnaryExpression(
            operator=operator.type,
            operand=self._build_expression(argument),
            postfix=argument.start_byte < operator.start_byte,
            location=self._loc(node)
        )

    def _build_assignment_expression(self, node) -> AST.AssignmentExpression:
        return AST.AssignmentExpression(
            operator=node.child_by_field_name('operator').type,
            left=self._build_expression(node.child_by_field_name('left')),
            right=self._build_expression(node.child_by_field_name('right')),
            location=self._loc(node)
        )

    def _build_conditional_expression(self, node) -> AST.ConditionalExpression:
        return AST.ConditionalExpression(
            condition=self._build_expression(node.child_by_field_name('condition')),
            consequence=self._build_expression(node.child_by_field_name('consequence')),
            alternative=self._build_expression(node.child_by_field_name('alternative')),
            location=self._loc(node)
        )

    def _build_call_expression(self, node) -> AST.CallExpression:
        arguments_node = node.child_by_field_name('arguments')
        arguments = []
        if arguments_node is not None:
            arguments = [self._build_expression(a) for a in arguments_node.named_children
                         if a.type != 'comment']
        return AST.CallExpression(
            callee=self._build_expression(node.child_by_field_name('function')),
            arguments=arguments,
            location=self._loc(node)
        )

    def _build_field_expression(self, node) -> AST.FieldExpression:
        return AST.FieldExpression(
            argument=self._build_expression(node.child_by_field_name('argument')),
            field=self._text(node.child_by_field_name('field')),
            location=self._loc(node)
        )

    def _build_subscript_expression(self, node) -> AST.SubscriptExpression:
        argument = node.child_by_field_name('argument') or node.named_children[0]
        index = node.child_by_field_name('index') or node.named_children[-1]
        return AST.SubscriptExpression(
            argument=self._build_expression(argument),
            index=self._build_expression(index),
            location=self._loc(node)
        )

    def _build_parenthesized_expression(self, node) -> AST.ParenthesizedExpression:
        return AST.ParenthesizedExpression(
            expression=self._build_expression(node.named_children[0]),
            location=self._loc(node)
        )

    def _build_comma_expression(self, node) -> AST.SequenceExpression:
        expressions = []
        current = node
        while current is not None and current.type == 'comma_expression':
            expressions.append(self._build_expression(current.child_by_field_name('left')))
            current = current.child_by_field_name('right')
        if current is not None:
            expressions.append(self._build_expression(current))
        return AST.SequenceExpression(expressions=expressions, location=self._loc(node))

    def _build_initializer_list(self, node) -> AST.InitializerList:
        return AST.InitializerList(
            elements=[self._build_expression(c) for c in node.named_children],
            location=self._loc(node)
        )
