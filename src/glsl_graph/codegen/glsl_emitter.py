"""
GLSL Code Generator.

Prints the mutable syntax tree (parser/ast_nodes.py) back to GLSL source.

Key Features:
- Operator precedence handling, so spliced fillers get parentheses when
  they bind looser than the expression they were written into
- Four-space indentation
- Prefix and postfix unary operators
- Raw nodes printed verbatim

Design:
- emit_{ClassName} dispatch over syntax tree nodes
- Expression emitters take the parent's precedence
- Statement emitters return complete, indented lines
"""

from typing import List, Optional

from ..parser import ast_nodes as AST


# Operator precedence levels (higher = tighter binding)
PRECEDENCE = {
    # Multiplicative
    '*': 13, '/': 13, '%': 13,
    # Additive
    '+': 12, '-': 12,
    # Shift
    '<<': 11, '>>': 11,
    # Relational
    '<': 10, '<=': 10, '>': 10, '>=': 10,
    # Equality
    '==': 9, '!=': 9,
    # Bitwise AND
    '&': 8,
    # Bitwise XOR
    '^': 7,
    # Bitwise OR
    '|': 6,
    # Logical AND
    '&&': 5,
    # Logical XOR (GLSL only)
    '^^': 5,
    # Logical OR
    '||': 4,
    # Ternary (handled separately)
    '?:': 3,
    # Assignment
    '=': 2, '+=': 2, '-=': 2, '*=': 2, '/=': 2, '%=': 2,
    '&=': 2, '^=': 2, '|=': 2, '<<=': 2, '>>=': 2,
    # Comma (lowest precedence)
    ',': 1,
}

PREFIX_PRECEDENCE = 14
POSTFIX_PRECEDENCE = 15

# Emitters that take the parent precedence
PRECEDENCE_AWARE = {
    'BinaryExpression', 'UnaryExpression', 'AssignmentExpression',
    'ConditionalExpression', 'SequenceExpression',
}


class GLSLEmitter:
    """
    GLSL source generator.

    Usage:
        emitter = GLSLEmitter()
        glsl = emitter.emit(program)

    Configuration:
        indent_size: Number of spaces per indentation level (default: 4)
    """

    def __init__(self, indent_size: int = 4):
        self.indent_size = indent_size
        self.indent_level = 0

    def indent(self) -> str:
        """Get current indentation string."""
        return ' ' * (self.indent_level * self.indent_size)

    def emit(self, node: AST.SyntaxNode, parent_precedence: int = 0) -> str:
        """
        Emit GLSL for a syntax tree node.

        Args:
            node: Any syntax tree node
            parent_precedence: Precedence of the enclosing operator

        Returns:
            GLSL source string
        """
        if node is None:
            return ""

        class_name = node.__class__.__name__
        method = getattr(self, f'emit_{class_name}', self.emit_generic)
        if class_name in PRECEDENCE_AWARE:
            return method(node, parent_precedence)
        return method(node)

    def emit_generic(self, node: AST.SyntaxNode) -> str:
        """Fallback for unknown node types."""
        raise NotImplementedError(
            f"No emit method for {node.__class__.__name__}. "
            f"Node: {node}"
        )

    # ========================================================================
    # Expressions
    # ========================================================================

    def emit_Identifier(self, node: AST.Identifier) -> str:
        return node.name

    def emit_Literal(self, node: AST.Literal) -> str:
        return node.value

    def emit_RawExpression(self, node: AST.RawExpression) -> str:
        return node.text

    def emit_BinaryExpression(self, node: AST.BinaryExpression, parent_precedence: int = 0) -> str:
        """
        Emit binary operation with proper precedence handling.

        Operators are left associative, so the right operand needs
        parentheses at equal precedence: a - (b - c).
        """
        op_precedence = PRECEDENCE.get(node.operator, 0)

        left = self.emit(node.left, op_precedence)
        right = self.emit(node.right, op_precedence + 1)
        code = f"{left} {node.operator} {right}"

        if op_precedence < parent_precedence:
            code = f"({code})"
        return code

    def emit_UnaryExpression(self, node: AST.UnaryExpression, parent_precedence: int = 0) -> str:
        """Emit prefix (-x, !x, ++i) or postfix (i++) operation."""
        if node.postfix:
            precedence = POSTFIX_PRECEDENCE
            code = f"{self.emit(node.operand, precedence)}{node.operator}"
        else:
            precedence = PREFIX_PRECEDENCE
            operand = self.emit(node.operand, precedence)
            # Keep `- -x` from collapsing into `--x`
            separator = ' ' if operand.startswith(node.operator[-1]) else ''
            code = f"{node.operator}{separator}{operand}"

        if precedence < parent_precedence:
            code = f"({code})"
        return code

    def emit_AssignmentExpression(self, node: AST.AssignmentExpression,
                                  parent_precedence: int = 0) -> str:
        precedence = PRECEDENCE['=']
        left = self.emit(node.left, precedence + 1)
        right = self.emit(node.right, precedence)
        code = f"{left} {node.operator} {right}"
        if precedence < parent_precedence:
            code = f"({code})"
        return code

    def emit_ConditionalExpression(self, node: AST.ConditionalExpression,
                                   parent_precedence: int = 0) -> str:
        """Emit ternary conditional operator."""
        ternary_precedence = PRECEDENCE['?:']

        condition = self.emit(node.condition, ternary_precedence + 1)
        consequence = self.emit(node.consequence, ternary_precedence)
        alternative = self.emit(node.alternative, ternary_precedence)
        code = f"{condition} ? {consequence} : {alternative}"

        if ternary_precedence < parent_precedence:
            code = f"({code})"
        return code

    def emit_SequenceExpression(self, node: AST.SequenceExpression,
                                parent_precedence: int = 0) -> str:
        precedence = PRECEDENCE[',']
        code = ', '.join(self.emit(e, precedence + 1) for e in node.expressions)
        if precedence < parent_precedence:
            code = f"({code})"
        return code

    def emit_ParenthesizedExpression(self, node: AST.ParenthesizedExpression) -> str:
        """Always keep the source's explicit grouping."""
        return f"({self.emit(node.expression)})"

    def emit_CallExpression(self, node: AST.CallExpression) -> str:
        callee = self.emit(node.callee, POSTFIX_PRECEDENCE)
        args = ', '.join(self.emit(arg, PRECEDENCE['=']) for arg in node.arguments)
        return f"{callee}({args})"

    def emit_FieldExpression(self, node: AST.FieldExpression) -> str:
        """Emit member access (swizzling, struct fields)."""
        return f"{self.emit(node.argument, POSTFIX_PRECEDENCE)}.{node.field}"

    def emit_SubscriptExpression(self, node: AST.SubscriptExpression) -> str:
        return f"{self.emit(node.argument, POSTFIX_PRECEDENCE)}[{self.emit(node.index)}]"

    def emit_InitializerList(self, node: AST.InitializerList) -> str:
        elements = ', '.join(self.emit(e, PRECEDENCE['=']) for e in node.elements)
        return f"{{{elements}}}"

    # ========================================================================
    # Types and Declarations
    # ========================================================================

    def _array_suffix(self, sizes: List[Optional[AST.SyntaxNode]]) -> str:
        return ''.join(f"[{self.emit(size)}]" for size in sizes)

    def type_text(self, node: AST.FullType) -> str:
        """Qualifiers, type name (or inline struct) and array sizes."""
        parts = list(node.qualifiers)
        if node.struct is not None:
            parts.append(self._struct_text(node.struct).rstrip())
        elif node.name:
            parts.append(node.name)
        return ' '.join(parts) + self._array_suffix(node.array_sizes)

    def declarator_text(self, node: AST.Declarator) -> str:
        text = node.name + self._array_suffix(node.array_sizes)
        if node.initializer is not None:
            text += f" = {self.emit(node.initializer, PRECEDENCE['='])}"
        return text

    def declaration_text(self, node: AST.Declaration) -> str:
        """Declaration without indentation or semicolon (for-loop headers)."""
        declarators = ', '.join(self.declarator_text(d) for d in node.declarators)
        type_text = self.type_text(node.type)
        return f"{type_text} {declarators}" if declarators else type_text

    def emit_FullType(self, node: AST.FullType) -> str:
        return self.type_text(node)

    def emit_Declarator(self, node: AST.Declarator) -> str:
        return self.declarator_text(node)

    def emit_Declaration(self, node: AST.Declaration) -> str:
        return f"{self.indent()}{self.declaration_text(node)};\n"

    def _field_block(self, fields: List[AST.Declaration]) -> str:
        result = "{\n"
        self.indent_level += 1
        for field_decl in fields:
            result += self.emit(field_decl)
        self.indent_level -= 1
        result += f"{self.indent()}}}"
        return result

    def _struct_text(self, node: AST.StructDefinition) -> str:
        header = f"struct {node.name} " if node.name else "struct "
        return header + self._field_block(node.fields)

    def emit_StructDefinition(self, node: AST.StructDefinition) -> str:
        """
        Emit struct definition.

            struct Light {
                vec3 color;
            };
        """
        return f"{self.indent()}{self._struct_text(node)};\n"

    def emit_InterfaceBlock(self, node: AST.InterfaceBlock) -> str:
        """
        Emit uniform/in/out block.

            uniform Material {
                vec4 color;
            } material;
        """
        header = ' '.join(node.qualifiers + [node.name])
        result = f"{self.indent()}{header} {self._field_block(node.fields)}"
        if node.instance is not None:
            result += f" {self.declarator_text(node.instance)}"
        return result + ";\n"

    # ========================================================================
    # Statements
    # ========================================================================

    def _emit_body(self, node: AST.SyntaxNode) -> str:
        """Body of if/for/while: a block on the same line, else the next line indented."""
        if isinstance(node, AST.CompoundStatement):
            return self.emit(node)
        self.indent_level += 1
        result = "\n" + self.emit(node)
        self.indent_level -= 1
        return result

    def emit_CompoundStatement(self, node: AST.CompoundStatement) -> str:
        """Emit block. The opening brace is placed by the caller's line."""
        result = "{\n"
        self.indent_level += 1
        for stmt in node.statements:
            result += self.emit(stmt)
        self.indent_level -= 1
        result += f"{self.indent()}}}\n"
        return result

    def emit_ExpressionStatement(self, node: AST.ExpressionStatement) -> str:
        return f"{self.indent()}{self.emit(node.expression)};\n"

    def emit_ReturnStatement(self, node: AST.ReturnStatement) -> str:
        if node.value is not None:
            return f"{self.indent()}return {self.emit(node.value)};\n"
        return f"{self.indent()}return;\n"

    def emit_JumpStatement(self, node: AST.JumpStatement) -> str:
        return f"{self.indent()}{node.keyword};\n"

    def emit_IfStatement(self, node: AST.IfStatement) -> str:
        result = f"{self.indent()}if ({self.emit(node.condition)}) "
        result += self._emit_body(node.consequence)

        if node.alternative is not None:
            if isinstance(node.alternative, AST.IfStatement):
                # else-if chain stays on one line
                result += f"{self.indent()}else " + self.emit(node.alternative).lstrip()
            else:
                result += f"{self.indent()}else " + self._emit_body(node.alternative)
        return result

    def emit_ForStatement(self, node: AST.ForStatement) -> str:
        init = ""
        if isinstance(node.initializer, AST.Declaration):
            init = self.declaration_text(node.initializer)
        elif node.initializer is not None:
            init = self.emit(node.initializer)
        condition = self.emit(node.condition) if node.condition is not None else ""
        update = self.emit(node.update) if node.update is not None else ""

        result = f"{self.indent()}for ({init}; {condition}; {update}) "
        return result + self._emit_body(node.body)

    def emit_WhileStatement(self, node: AST.WhileStatement) -> str:
        result = f"{self.indent()}while ({self.emit(node.condition)}) "
        return result + self._emit_body(node.body)

    def emit_DoStatement(self, node: AST.DoStatement) -> str:
        result = f"{self.indent()}do "
        body = self._emit_body(node.body)
        if isinstance(node.body, AST.CompoundStatement):
            body = body.rstrip('\n')
        else:
            body += self.indent()
        return result + body + f" while ({self.emit(node.condition)});\n"

    def emit_SwitchStatement(self, node: AST.SwitchStatement) -> str:
        result = f"{self.indent()}switch ({self.emit(node.condition)}) {{\n"
        self.indent_level += 1
        for case in node.cases:
            result += self.emit(case)
        self.indent_level -= 1
        result += f"{self.indent()}}}\n"
        return result

    def emit_CaseStatement(self, node: AST.CaseStatement) -> str:
        if node.value is None:
            result = f"{self.indent()}default:\n"
        else:
            result = f"{self.indent()}case {self.emit(node.value)}:\n"
        self.indent_level += 1
        for stmt in node.statements:
            result += self.emit(stmt)
        self.indent_level -= 1
        return result

    def emit_RawStatement(self, node: AST.RawStatement) -> str:
        return f"{self.indent()}{node.text}\n"

    # ========================================================================
    # Functions
    # ========================================================================

    def emit_Parameter(self, node: AST.Parameter) -> str:
        type_text = self.type_text(node.type)
        if node.name is None:
            return type_text
        return f"{type_text} {node.name}{self._array_suffix(node.array_sizes)}"

    def emit_FunctionPrototype(self, node: AST.FunctionPrototype) -> str:
        params = ', '.join(self.emit(p) for p in node.parameters)
        return f"{self.type_text(node.return_type)} {node.name}({params})"

    def emit_FunctionDeclaration(self, node: AST.FunctionDeclaration) -> str:
        return f"{self.indent()}{self.emit(node.prototype)};\n"

    def emit_FunctionDefinition(self, node: AST.FunctionDefinition) -> str:
        return f"{self.indent()}{self.emit(node.prototype)} " + self.emit(node.body)

    # ========================================================================
    # Top-Level
    # ========================================================================

    def emit_Preprocessor(self, node: AST.Preprocessor) -> str:
        return f"{node.line}\n"

    def emit_Precision(self, node: AST.Precision) -> str:
        return f"precision {node.qualifier} {node.type_name};\n"

    def emit_Program(self, node: AST.Program) -> str:
        """
        Emit an entire shader.

        Function definitions are followed by a blank line.
        """
        result = ""
        for stmt in node.statements:
            result += self.emit(stmt)
            if isinstance(stmt, AST.FunctionDefinition):
                result += "\n"
        return result


def generate(node: AST.SyntaxNode) -> str:
    """Print a tree (or any subtree) with a fresh emitter."""
    return GLSLEmitter().emit(node)
