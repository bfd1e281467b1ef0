"""
Preprocessor - expands GLSL macros and resolves conditional compilation.

Nodes whose config sets `preprocess` run through this pass before parsing,
so the linker sees plain GLSL: macro names cannot be renamed safely, and
inactive #ifdef branches would otherwise leak declarations into the merge.

This module handles:
1. #define / #undef: object-like and function-like macros, expanded in code
2. Conditional compilation: #if, #ifdef, #ifndef, #elif, #else, #endif
3. #error: raised as PreprocessorError when reached
4. #version, #extension, #pragma: passed through unchanged

Design:
- String-based processing (preprocessor directives are not part of AST)
- Line-by-line parsing; removed lines become blank so row numbers survive
- Regex-based macro expansion, recursion-safe
- #if expressions evaluated over Python's ast module (integers only)

Usage:
    transformer = PreprocessorTransformer(defines={'USE_MAP': '1'})
    plain_source = transformer.transform(glsl_source)
"""

import ast
import logging
import operator
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from ..errors import PreprocessorError

logger = logging.getLogger(__name__)

IDENTIFIER_RE = re.compile(r'\b[A-Za-z_][A-Za-z0-9_]*\b')
DEFINED_RE = re.compile(r'\bdefined\s*(?:\(\s*([A-Za-z_]\w*)\s*\)|([A-Za-z_]\w*))')
DEFINE_RE = re.compile(r'^(\s*)#\s*define\s+([a-zA-Z_][a-zA-Z0-9_]*)(\([^)]*\))?\s*(.*)$')

PASSTHROUGH_DIRECTIVES = {'version', 'extension', 'pragma', 'line', 'include'}

BINARY_OPERATORS = {
    ast.Add: operator.add, ast.Sub: operator.sub, ast.Mult: operator.mul,
    ast.Mod: operator.mod, ast.LShift: operator.lshift, ast.RShift: operator.rshift,
    ast.BitAnd: operator.and_, ast.BitOr: operator.or_, ast.BitXor: operator.xor,
}

COMPARE_OPERATORS = {
    ast.Eq: operator.eq, ast.NotEq: operator.ne, ast.Lt: operator.lt,
    ast.LtE: operator.le, ast.Gt: operator.gt, ast.GtE: operator.ge,
}


def strip_comments(source: str) -> str:
    """Blank out // and /* */ comments, keeping every newline in place."""
    out = []
    i = 0
    n = len(source)
    while i < n:
        if source.startswith('//', i):
            end = source.find('\n', i)
            end = n if end == -1 else end
            out.append(' ' * (end - i))
            i = end
        elif source.startswith('/*', i):
            end = source.find('*/', i + 2)
            end = n if end == -1 else end + 2
            out.append(''.join(c if c == '\n' else ' ' for c in source[i:end]))
            i = end
        else:
            out.append(source[i])
            i += 1
    return ''.join(out)


@dataclass
class Macro:
    name: str
    params: Optional[List[str]]  # None for object-like macros
    body: str


@dataclass
class _Conditional:
    parent_active: bool
    taken: bool       # some branch of this #if chain already matched
    active: bool
    seen_else: bool = False


class PreprocessorTransformer:
    """
    Expands macros and strips inactive conditional branches.

    Attributes:
        macros: Macros defined so far (name -> Macro)
    """

    def __init__(self, defines: Optional[Dict[str, str]] = None):
        """
        Args:
            defines: Predefined object-like macros (name -> body)
        """
        self.macros: Dict[str, Macro] = {}
        for name, body in (defines or {}).items():
            self.macros[name] = Macro(name=name, params=None, body=str(body))
        self._stack: List[_Conditional] = []

    @property
    def active(self) -> bool:
        return not self._stack or self._stack[-1].active

    def transform(self, source: str) -> str:
        """
        Preprocess GLSL source.

        Raises:
            PreprocessorError: on #error, or an unbalanced conditional
        """
        self._stack = []
        lines = strip_comments(source).split('\n')
        transformed_lines = []

        row = 0
        while row < len(lines):
            line = lines[row]
            consumed = 1
            # Join continuation lines, padding with blanks to keep row count
            while line.rstrip().endswith('\\') and row + consumed < len(lines):
                line = line.rstrip()[:-1] + ' ' + lines[row + consumed]
                consumed += 1
            transformed_lines.append(self._transform_line(line, row))
            transformed_lines.extend([''] * (consumed - 1))
            row += consumed

        if self._stack:
            raise PreprocessorError(f"Unterminated conditional: {len(self._stack)} #if without #endif")
        return '\n'.join(transformed_lines)

    def _transform_line(self, line: str, row: int) -> str:
        stripped = line.lstrip()
        if not stripped.startswith('#'):
            return self.expand(line) if self.active else ''

        match = re.match(r'#\s*(\w+)\s*(.*)$', stripped)
        if not match:
            return line if self.active else ''
        directive, rest = match.group(1), match.group(2).strip()

        if directive in ('if', 'ifdef', 'ifndef'):
            self._push(directive, rest, row)
        elif directive == 'elif':
            self._elif(rest, row)
        elif directive == 'else':
            self._else(row)
        elif directive == 'endif':
            if not self._stack:
                raise PreprocessorError(f"#endif without #if at line {row+1}")
            self._stack.pop()
        elif not self.active:
            pass
        elif directive == 'define':
            self._transform_define(line)
        elif directive == 'undef':
            self.macros.pop(rest.split()[0] if rest else '', None)
        elif directive == 'error':
            raise PreprocessorError(f"#error {rest}".rstrip())
        elif directive in PASSTHROUGH_DIRECTIVES:
            return line
        else:
            logger.debug(f"Passing through unknown directive #{directive}")
            return line
        return ''

    # ========================================================================
    # Conditionals
    # ========================================================================

    def _push(self, directive: str, rest: str, row: int):
        parent_active = self.active
        if directive == 'ifdef':
            result = rest.split()[0] in self.macros if rest else False
        elif directive == 'ifndef':
            result = rest.split()[0] not in self.macros if rest else True
        else:
            result = bool(self.evaluate(rest, row)) if parent_active else False
        active = parent_active and result
        self._stack.append(_Conditional(parent_active=parent_active, taken=active, active=active))

    def _elif(self, rest: str, row: int):
        if not self._stack or self._stack[-1].seen_else:
            raise PreprocessorError(f"Unexpected #elif at line {row+1}")
        frame = self._stack[-1]
        if frame.taken or not frame.parent_active:
            frame.active = False
            return
        frame.active = bool(self.evaluate(rest, row))
        frame.taken = frame.active

    def _else(self, row: int):
        if not self._stack or self._stack[-1].seen_else:
            raise PreprocessorError(f"Unexpected #else at line {row+1}")
        frame = self._stack[-1]
        frame.seen_else = True
        frame.active = frame.parent_active and not frame.taken
        frame.taken = True

    # ========================================================================
    # Macros
    # ========================================================================

    def _transform_define(self, line: str):
        """
        Record a #define directive.

        Handles:
        - Object-like macros: #define PI 3.14159265
        - Function-like macros: #define random(x) fract(sin(x))
        """
        match = DEFINE_RE.match(line)
        if not match:
            raise PreprocessorError(f"Malformed #define: {line.strip()}")

        macro_name = match.group(2)
        params = match.group(3)
        body = match.group(4).strip()
        if params is not None:
            params = [p.strip() for p in params[1:-1].split(',') if p.strip()]
        self.macros[macro_name] = Macro(name=macro_name, params=params, body=body)
        logger.debug(f"Defined macro {macro_name}")

    def expand(self, text: str, hidden: frozenset = frozenset()) -> str:
        """
        Expand macros in a line of code.

        A macro is not re-expanded inside its own replacement.
        """
        result = []
        pos = 0
        while True:
            match = IDENTIFIER_RE.search(text, pos)
            if match is None:
                result.append(text[pos:])
                break
            name = match.group(0)
            macro = self.macros.get(name)
            if macro is None or name in hidden:
                result.append(text[pos:match.end()])
                pos = match.end()
                continue

            result.append(text[pos:match.start()])
            if macro.params is None:
                result.append(self.expand(macro.body, hidden | {name}))
                pos = match.end()
                continue

            args, end = self._read_arguments(text, match.end())
            if args is None:
                # Function-like macro name without a call
                result.append(name)
                pos = match.end()
                continue
            body = macro.body
            if len(args) != len(macro.params) and not (macro.params == [] and args == ['']):
                raise PreprocessorError(
                    f"Macro {name} expects {len(macro.params)} arguments, got {len(args)}"
                )
            for param, arg in zip(macro.params, args):
                body = re.sub(r'\b' + re.escape(param) + r'\b',
                              lambda _m, a=self.expand(arg.strip(), hidden): a, body)
            result.append(self.expand(body, hidden | {name}))
            pos = end
        return ''.join(result)

    def _read_arguments(self, text: str, start: int):
        """Read a parenthesized, comma-separated argument list starting at start."""
        i = start
        while i < len(text) and text[i].isspace():
            i += 1
        if i >= len(text) or text[i] != '(':
            return None, start
        depth = 0
        args = []
        current = []
        for j in range(i, len(text)):
            c = text[j]
            if c == '(':
                depth += 1
                if depth == 1:
                    continue
            elif c == ')':
                depth -= 1
                if depth == 0:
                    args.append(''.join(current))
                    return args, j + 1
            elif c == ',' and depth == 1:
                args.append(''.join(current))
                current = []
                continue
            current.append(c)
        raise PreprocessorError(f"Unterminated macro call: {text[start:].strip()}")

    # ========================================================================
    # #if expressions
    # ========================================================================

    def evaluate(self, expression: str, row: int = 0) -> int:
        """Evaluate a #if / #elif controlling expression."""
        text = DEFINED_RE.sub(
            lambda m: '1' if (m.group(1) or m.group(2)) in self.macros else '0',
            expression
        )
        text = self.expand(text)
        # Undefined identifiers evaluate to 0
        text = IDENTIFIER_RE.sub('0', text)
        text = re.sub(r'(\d+)[uU]\b', r'\1', text)
        text = text.replace('&&', ' and ').replace('||', ' or ')
        text = re.sub(r'!(?!=)', ' not ', text)
        try:
            tree = ast.parse(text.strip(), mode='eval')
            return int(self._eval_node(tree.body))
        except (SyntaxError, ValueError, KeyError, ZeroDivisionError) as e:
            raise PreprocessorError(
                f"Invalid #if expression '{expression}' at line {row+1}: {e}"
            ) from e

    def _eval_node(self, node) -> int:
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, bool)):
            return int(node.value)
        if isinstance(node, ast.BoolOp):
            values = [self._eval_node(v) for v in node.values]
            if isinstance(node.op, ast.And):
                return int(all(values))
            return int(any(values))
        if isinstance(node, ast.UnaryOp):
            operand = self._eval_node(node.operand)
            if isinstance(node.op, ast.Not):
                return int(not operand)
            if isinstance(node.op, ast.USub):
                return -operand
            if isinstance(node.op, ast.UAdd):
                return operand
            if isinstance(node.op, ast.Invert):
                return ~operand
        if isinstance(node, ast.BinOp):
            left = self._eval_node(node.left)
            right = self._eval_node(node.right)
            if isinstance(node.op, (ast.Div, ast.FloorDiv)):
                # C integer division truncates toward zero
                return int(left / right)
            op = BINARY_OPERATORS.get(type(node.op))
            if op is not None:
                return op(left, right)
        if isinstance(node, ast.Compare):
            left = self._eval_node(node.left)
            for op_node, comparator in zip(node.ops, node.comparators):
                right = self._eval_node(comparator)
                if not COMPARE_OPERATORS[type(op_node)](left, right):
                    return 0
                left = right
            return 1
        raise ValueError(f"unsupported construct {node.__class__.__name__}")
