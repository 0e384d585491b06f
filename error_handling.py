"""
Error handling for MinRuby
Parse errors with detailed messages, plus the runtime error kinds raised by the evaluator
"""

from typing import Any, List, Optional, Dict
from pyparsing import ParseBaseException
import re


# ============================================================================
# DATA STRUCTURES (Immutable Dictionaries)
# ============================================================================

def make_parse_error(
    message: str,
    location: int,
    line: int,
    column: int,
    expected: Optional[List[str]] = None,
    got: Optional[str] = None,
    context: Optional[str] = None,
    suggestions: Optional[List[str]] = None
) -> Dict:
    """Create an immutable parse error structure"""
    return {
        'message': message,
        'location': location,
        'line': line,
        'column': column,
        'expected': expected or [],
        'got': got,
        'context': context,
        'suggestions': suggestions or []
    }


def format_parse_error(error: Dict) -> str:
    """Format parse error as string"""
    error_msg = f"Parse error at line {error['line']}, column {error['column']}:\n"
    error_msg += f"  {error['message']}\n"

    if error['expected']:
        error_msg += f"  Expected: {', '.join(error['expected'])}\n"

    if error['got']:
        error_msg += f"  Got: {error['got']}\n"

    if error['context']:
        error_msg += f"  Context:\n{error['context']}\n"

    if error['suggestions']:
        error_msg += "  Suggestions:\n"
        for suggestion in error['suggestions']:
            error_msg += f"    - {suggestion}\n"

    return error_msg


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^ Error here")

    return '\n'.join(context_parts)


def extract_expected(exc: ParseBaseException) -> List[str]:
    """Extract expected tokens from exception"""
    msg = str(exc)
    expected_match = re.search(r"Expected\s+(.+?)(?:,\s+found|\s+\(at|$)", msg)
    if expected_match:
        return [expected_match.group(1)]
    return ["valid syntax"]


def extract_got(source_text: str, line_num: int, col_num: int) -> str:
    """Extract what was actually found at the error location"""
    lines = source_text.split('\n')

    if line_num <= len(lines):
        error_line = lines[line_num - 1]
        if col_num <= len(error_line):
            start = max(0, col_num - 1)
            end = min(len(error_line), col_num + 10)
            got_text = error_line[start:end].strip()
            if got_text:
                return f"'{got_text}'"
        return "end of line"
    return "end of input"


def count_open_blocks(source_text: str) -> int:
    """Number of def/if/while blocks that have no matching `end` yet"""
    depth = 0
    for line in source_text.split('\n'):
        code = line.split('#', 1)[0]
        if re.match(r"\s*(def|if|while)\b", code) or re.search(r"=\s*(if|while)\b", code):
            depth += 1
        depth -= len(re.findall(r"\bend\b", code))
    return depth


def generate_suggestions(source_text: str, got: str, expected: List[str]) -> List[str]:
    """Generate helpful suggestions based on the error"""
    suggestions = []

    open_blocks = count_open_blocks(source_text)
    if open_blocks > 0:
        suggestions.append(f"{open_blocks} block(s) opened with def/if/while are missing 'end'")
    elif open_blocks < 0:
        suggestions.append("There is an 'end' without a matching def/if/while")

    if "{" in got:
        suggestions.append("Hash literals need '=>' between key and value: {1 => 2}")

    if "&&" in got or "||" in got or "!" in got:
        suggestions.append("MinRuby has no boolean operators; use nested if instead")

    if "elseif" in got or "else if" in got:
        suggestions.append("Use 'elsif' for chained conditions")

    return suggestions


def enhance_parse_exception_dict(exc: ParseBaseException, source_text: str) -> Dict:
    """Convert pyparsing exception to enhanced MinRuby error dict"""
    line_num = exc.lineno
    col_num = exc.column

    context = get_context_lines(source_text, line_num, col_num)
    expected = extract_expected(exc)
    got = extract_got(source_text, line_num, col_num)
    suggestions = generate_suggestions(source_text, got, expected)

    return make_parse_error(
        message=exc.msg,
        location=exc.loc,
        line=line_num,
        column=col_num,
        expected=expected,
        got=got,
        context=context,
        suggestions=suggestions
    )


# ============================================================================
# PARSE ERRORS
# ============================================================================

class MinRubyParseError(Exception):
    """Syntax error in MinRuby source, with location and context"""
    def __init__(self, message: str, location: int = 0, line: int = 0, column: int = 0,
                 expected: Optional[List[str]] = None, got: Optional[str] = None,
                 context: Optional[str] = None, suggestions: Optional[List[str]] = None,
                 filename: str = "<input>"):
        self.message = message
        self.location = location
        self.line = line
        self.column = column
        self.expected = expected or []
        self.got = got
        self.context = context
        self.suggestions = suggestions or []
        self.filename = filename
        super().__init__(message)

    def __str__(self) -> str:
        error_dict = make_parse_error(
            self.message, self.location, self.line, self.column,
            self.expected, self.got, self.context, self.suggestions
        )
        return f"{self.filename}: {format_parse_error(error_dict)}"


class MinRubyErrorHandler:
    """Turns pyparsing exceptions raised on one source text into MinRubyParseErrors"""
    def __init__(self, source_text: str, filename: str = "<input>"):
        self.source_text = source_text
        self.filename = filename

    def enhance_parse_exception(self, exc: ParseBaseException) -> MinRubyParseError:
        """Convert pyparsing exception to enhanced MinRuby error"""
        error_dict = enhance_parse_exception_dict(exc, self.source_text)
        return MinRubyParseError(
            message=error_dict['message'],
            location=error_dict['location'],
            line=error_dict['line'],
            column=error_dict['column'],
            expected=error_dict['expected'],
            got=error_dict['got'],
            context=error_dict['context'],
            suggestions=error_dict['suggestions'],
            filename=self.filename
        )


# ============================================================================
# RUNTIME ERRORS
# ============================================================================

class MinRubyRuntimeError(Exception):
    """Base class for fatal evaluation failures"""
    def __init__(self, message: str, node: Any = None):
        self.message = message
        self.node = node
        super().__init__(message)


class UnknownNodeKind(MinRubyRuntimeError):
    """The evaluator met a node whose kind tag it does not handle"""
    def __init__(self, node: Any):
        # imported here: utilities depends on this module
        from utilities import node_kind, pretty_format
        self.kind = node_kind(node)
        self.dump = pretty_format(node)
        super().__init__(f"unknown node: {self.kind if self.kind is not None else self.dump}", node)


class UnknownBuiltinFunction(MinRubyRuntimeError):
    """A call resolved to neither a user definition nor a builtin"""
    def __init__(self, name: str, node: Any = None):
        self.name = name
        super().__init__(f"unknown builtin function: {name}", node)


class InvalidIntegerLiteral(MinRubyRuntimeError):
    """Integer() was given something that is not an integer"""
    pass


class ArithmeticFailure(MinRubyRuntimeError):
    """Division by zero or an operator applied to incompatible operands"""
    pass


class WrongNumberOfArguments(MinRubyRuntimeError):
    """A fixed-arity builtin was called with the wrong argument count"""
    def __init__(self, name: str, given: int, expected: int):
        self.name = name
        self.given = given
        self.expected = expected
        super().__init__(f"{name}: wrong number of arguments (given {given}, expected {expected})")


class InvalidIndexOperation(MinRubyRuntimeError):
    """Indexing a value that cannot be indexed, or with an unusable index"""
    pass


class MinRubyLoadError(MinRubyRuntimeError):
    """require / minruby_load could not provide what was asked for"""
    pass
