"""
MinRuby Parser
Turns MinRuby program text into the tagged AST the evaluator walks
"""

from typing import Any, List, Optional
import re
import sys

from pyparsing import (
    DelimitedList, Forward, Group, Keyword, Literal, MatchFirst, OneOrMore,
    OpAssoc, Optional as PyParsingOptional, ParseBaseException, ParseException,
    ParserElement, ParseResults, QuotedString, Regex, StringEnd, Suppress, ZeroOrMore,
    infix_notation, one_of
)

from error_handling import MinRubyErrorHandler, MinRubyParseError
from utilities import node_kind, pretty_format

# Enable packrat parsing for performance
ParserElement.enable_packrat()


KEYWORDS = ("def", "end", "if", "elsif", "else", "then", "while", "do", "true", "false", "nil")

# newlines end statements, so only spaces, tabs and carriage returns are skipped
MINRUBY_WHITESPACE = " \t\r"


# ============================================================================
# AST CONSTRUCTION
# ============================================================================

def make_stmts(nodes: List[Any]) -> Any:
    """A body of one statement is that statement; otherwise a stmts node"""
    nodes = list(nodes)
    if len(nodes) == 1:
        return nodes[0]
    return ("stmts", *nodes)


def unwrap_operand(item: Any) -> Any:
    """Operands from a lower precedence level may arrive wrapped in ParseResults"""
    while isinstance(item, ParseResults) and len(item) == 1:
        item = item[0]
    return item


def make_negation(tokens):
    """-x: negative literal for integers, 0 - x otherwise"""
    operand = unwrap_operand(tokens[0][1])
    if node_kind(operand) == "lit" and type(operand[1]) is int:
        return ("lit", -operand[1])
    return ("-", ("lit", 0), operand)


def make_binary_chain(tokens):
    """[a, op, b, op, c] -> (op, (op, a, b), c)"""
    items = [unwrap_operand(item) for item in tokens[0]]
    node = items[0]
    for i in range(1, len(items), 2):
        node = (items[i], node, items[i + 1])
    return node


def make_index_chain(tokens):
    """recv[i][j] -> ary_ref(ary_ref(recv, i), j)"""
    node = tokens[0]
    for index_group in tokens[1:]:
        node = ("ary_ref", node, index_group[0])
    return node


def make_assignment(instring, loc, tokens):
    """Turn `target = value` into var_assign or ary_assign"""
    target, value = tokens[0], tokens[1]
    kind = node_kind(target)
    if kind == "var_ref":
        return ("var_assign", target[1], value)
    elif kind == "ary_ref":
        return ("ary_assign", target[1], target[2], value)
    raise ParseException(instring, loc, f"cannot assign to {kind}")


def make_op_assignment(tokens):
    """x += e -> x = x + e"""
    name, op, value = tokens[0], tokens[1], tokens[2]
    return ("var_assign", name, (op, ("var_ref", name), value))


def make_if(tokens):
    """Nest elsif clauses into the else slot of the enclosing if"""
    cond, then_body, elsif_clauses = tokens[0], tokens[1], tokens[2]
    else_node = make_stmts(tokens[3]) if len(tokens) > 3 else None
    for clause in reversed(list(elsif_clauses)):
        else_node = ("if", clause[0], make_stmts(clause[1]), else_node)
    return ("if", cond, make_stmts(then_body), else_node)


def apply_modifiers(tokens):
    """stmt if cond / stmt while cond, applied left to right"""
    node = tokens[0]
    for keyword, cond in tokens[1:]:
        if keyword == "if":
            node = ("if", cond, node, None)
        else:
            node = ("while", cond, node)
    return node


def ast_to_value(node: Any) -> Any:
    """Convert a parsed AST into MinRuby arrays (tuples become lists)"""
    if isinstance(node, (tuple, list)):
        return [ast_to_value(child) for child in node]
    return node


# ============================================================================
# GRAMMAR
# ============================================================================

class MinRubyGrammar:
    """MinRuby grammar definition using pyparsing"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        saved_whitespace = ParserElement.DEFAULT_WHITE_CHARS
        ParserElement.set_default_whitespace_chars(MINRUBY_WHITESPACE)
        try:
            self._setup_grammar()
        finally:
            ParserElement.set_default_whitespace_chars(saved_whitespace)

    def _setup_grammar(self):
        """Build the statement and expression grammar"""

        # Forward declarations for recursive structures
        expression = Forward()
        statement = Forward()
        rhs = Forward()

        # Layout: newlines and ';' separate statements, newlines may follow
        # an opening bracket or a comma
        terminator = Regex(r"[;\n]")
        sep = Suppress(OneOrMore(terminator))
        opt_sep = Suppress(ZeroOrMore(terminator))
        nl = Suppress(ZeroOrMore(Literal("\n")))
        comma = Suppress(",") + nl
        comment = Regex(r"#[^\n]*")

        # Keywords
        def_kw, end_kw, if_kw, elsif_kw, else_kw, then_kw, while_kw, do_kw = (
            Keyword(word) for word in ("def", "end", "if", "elsif", "else", "then", "while", "do")
        )
        any_keyword = MatchFirst([Keyword(word) for word in KEYWORDS])
        block_keyword = MatchFirst([Keyword(word) for word in ("if", "elsif", "else", "then", "while", "do", "end")])

        # Identifiers
        name = ~any_keyword + Regex(r"[A-Za-z_][A-Za-z0-9_]*")
        var_ref = name.copy().set_parse_action(lambda t: ("var_ref", t[0]))

        # Literals
        integer = Regex(r"\d+(?:_\d+)*").set_parse_action(lambda t: ("lit", int(t[0].replace("_", ""))))
        dq_string = QuotedString('"', esc_char='\\', multiline=True).set_parse_action(lambda t: ("lit", t[0]))
        # single quotes only unescape \' and \\
        sq_string = Regex(r"'(?:[^'\\]|\\.)*'").set_parse_action(
            lambda t: ("lit", re.sub(r"\\([\\'])", r"\1", t[0][1:-1]))
        )
        true_lit = Keyword("true").set_parse_action(lambda t: ("lit", True))
        false_lit = Keyword("false").set_parse_action(lambda t: ("lit", False))
        nil_lit = Keyword("nil").set_parse_action(lambda t: ("lit", None))

        # Statement sequences
        body = opt_sep + PyParsingOptional(statement + ZeroOrMore(sep + statement)) + opt_sep

        # Collections
        array_literal = (
            Suppress("[") + nl +
            PyParsingOptional(DelimitedList(expression, delim=comma, allow_trailing_delim=True)) +
            nl + Suppress("]")
        ).set_parse_action(lambda t: ("ary_new", *t))

        hash_pair = expression + Suppress("=>") + nl + expression
        hash_literal = (
            Suppress("{") + nl +
            PyParsingOptional(DelimitedList(hash_pair, delim=comma, allow_trailing_delim=True)) +
            nl + Suppress("}")
        ).set_parse_action(lambda t: ("hash_new", *t))

        # Calls: name(args) needs the paren to touch the name
        tight_lparen = Suppress(Literal("(").leave_whitespace())
        paren_call = (
            name + tight_lparen + nl +
            Group(PyParsingOptional(DelimitedList(expression, delim=comma))) +
            nl + Suppress(")")
        ).set_parse_action(lambda t: ("func_call", t[0], *t[1]))

        # Command calls: `name arg, arg` with at least one argument on the line
        command_name = ~any_keyword + Regex(r"[A-Za-z_][A-Za-z0-9_]*(?=[ \t]+[A-Za-z0-9_\"'(\[])")
        command_call = (
            command_name + ~block_keyword + Group(DelimitedList(expression, delim=comma))
        ).set_parse_action(lambda t: ("func_call", t[0], *t[1]))

        # Compound expressions
        paren_expr = (Suppress("(") + Group(body) + Suppress(")")).set_parse_action(lambda t: make_stmts(t[0]))

        then_part = PyParsingOptional(Suppress(then_kw))
        elsif_clause = Group(Suppress(elsif_kw) + expression + then_part + Group(body))
        if_expr = (
            Suppress(if_kw) + expression + then_part + Group(body) +
            Group(ZeroOrMore(elsif_clause)) +
            PyParsingOptional(Suppress(else_kw) + Group(body)) +
            Suppress(end_kw)
        ).set_parse_action(make_if)

        while_expr = (
            Suppress(while_kw) + expression + PyParsingOptional(Suppress(do_kw)) +
            Group(body) + Suppress(end_kw)
        ).set_parse_action(lambda t: ("while", t[0], make_stmts(t[1])))

        primary = (
            integer | dq_string | sq_string | true_lit | false_lit | nil_lit |
            array_literal | hash_literal | if_expr | while_expr |
            paren_call | paren_expr | var_ref
        )

        # Indexing: recv[i] needs the bracket to touch the receiver
        tight_lbracket = Suppress(Literal("[").leave_whitespace())
        index_suffix = Group(tight_lbracket + nl + expression + nl + Suppress("]"))
        postfix = (primary + ZeroOrMore(index_suffix)).set_parse_action(make_index_chain)

        # Operators, tightest first
        expression <<= infix_notation(postfix, [
            (Literal("-"), 1, OpAssoc.RIGHT, make_negation),
            (one_of("* / %"), 2, OpAssoc.LEFT, make_binary_chain),
            (one_of("+ -"), 2, OpAssoc.LEFT, make_binary_chain),
            (one_of("<= >= < >"), 2, OpAssoc.LEFT, make_binary_chain),
            (one_of("== !="), 2, OpAssoc.LEFT, make_binary_chain),
        ], lpar="(", rpar=")").add_parse_action(lambda t: unwrap_operand(t[0]))

        # Statements
        assign_op = Suppress(Regex(r"=(?![=>~])"))
        compound_op = Regex(r"[-+*/%]=").set_parse_action(lambda t: t[0][0])
        assignment = (postfix + assign_op + nl + rhs).set_parse_action(make_assignment)
        op_assignment = (name + compound_op + nl + rhs).set_parse_action(make_op_assignment)
        rhs <<= assignment | command_call | expression

        params = (
            Suppress("(") + nl + Group(PyParsingOptional(DelimitedList(name, delim=comma))) + nl + Suppress(")") |
            Group(PyParsingOptional(DelimitedList(name, delim=comma)))
        )
        def_stmt = (
            Suppress(def_kw) + name + params + Group(body) + Suppress(end_kw)
        ).set_parse_action(lambda t: ("func_def", t[0], list(t[1]), make_stmts(t[2])))

        modifier = Group((if_kw | while_kw) + expression)
        simple_statement = def_stmt | op_assignment | assignment | command_call | expression
        statement <<= (simple_statement + ZeroOrMore(modifier)).set_parse_action(apply_modifiers)

        program = body + StringEnd()
        program.ignore(comment)
        program.parse_with_tabs()

        expression.set_name("expression")
        statement.set_name("statement")

        self.expression = expression
        self.statement = statement
        self.program = program

    def parse_program(self, text: str, filename: str = "<input>") -> Any:
        """Parse a whole program into one AST node"""
        try:
            result = self.program.parse_string(text, parse_all=True)
        except ParseBaseException as e:
            raise MinRubyErrorHandler(text, filename).enhance_parse_exception(e) from e
        node = make_stmts(result)
        if self.debug:
            print(f"Parsed {filename}:\n{pretty_print_ast(node)}", file=sys.stderr)
        return node

    def parse_expression(self, text: str, filename: str = "<input>") -> Any:
        """Parse a single expression"""
        try:
            result = self.expression.parse_string(text.strip(), parse_all=True)
        except ParseBaseException as e:
            raise MinRubyErrorHandler(text, filename).enhance_parse_exception(e) from e
        return result[0]


class MinRubyParser:
    """Main MinRuby parser: file and string entry points over the grammar"""

    def __init__(self, debug: bool = False):
        self.debug = debug
        self.grammar = MinRubyGrammar(debug)

    def parse_file(self, filepath: str) -> Any:
        """Parse a MinRuby source file"""
        try:
            with open(filepath, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise MinRubyParseError(f"File not found: {filepath}", filename=filepath)
        except UnicodeDecodeError as e:
            raise MinRubyParseError(f"Cannot decode file {filepath}: {e}", filename=filepath)
        return self.grammar.parse_program(content, filepath)

    def parse_string(self, text: str, filename: str = "<input>") -> Any:
        """Parse MinRuby source code from string"""
        return self.grammar.parse_program(text, filename)

    def parse_expression(self, text: str, filename: str = "<input>") -> Any:
        """Parse a single MinRuby expression"""
        return self.grammar.parse_expression(text, filename)


# Factory functions for creating parsers
def create_parser(debug: bool = False) -> MinRubyParser:
    """Create a MinRuby parser"""
    return MinRubyParser(debug=debug)


def create_debug_parser() -> MinRubyParser:
    """Create a MinRuby parser with debug enabled"""
    return MinRubyParser(debug=True)


_default_parser: Optional[MinRubyParser] = None


def parse_program(text: str, filename: str = "<input>") -> Any:
    """Parse with a shared parser instance (the grammar is built once)"""
    global _default_parser
    if _default_parser is None:
        _default_parser = create_parser()
    return _default_parser.parse_string(text, filename)


# ============================================================================
# PROGRAM LOADING
# ============================================================================

def read_source(path: str) -> str:
    """Read a MinRuby source file as UTF-8 text"""
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def minruby_load(argv: List[str]) -> str:
    """Shift the next path off argv and return that file's text"""
    return read_source(argv.pop(0))


# ============================================================================
# AST UTILITIES
# ============================================================================

def find_nodes_by_kind(node: Any, kind: str) -> List[Any]:
    """Find all nodes of a specific kind in an AST"""
    result = []

    def search(current: Any):
        if node_kind(current) == kind:
            result.append(current)
        if isinstance(current, (tuple, list)):
            for child in current[1:]:
                search(child)

    search(node)
    return result


def pretty_print_ast(node: Any) -> str:
    """Pretty print an AST in Ruby pp layout"""
    return pretty_format(node)
