"""
Utilities module for the MinRuby interpreter
Value inspection, node helpers and error builders shared by the parser and evaluator
"""

from collections.abc import Mapping, MutableMapping
from typing import Any, Callable, List, Optional, Set
import operator

from error_handling import ArithmeticFailure, WrongNumberOfArguments


# ==================== VALUE TYPE UTILITIES ====================

def type_name(value: Any) -> str:
  """
  Name of the MinRuby type a Python value represents

  bool is checked before int, since True/False are ints to Python
  but never Integers to MinRuby.

  Examples:
    type_name(1) -> "Integer"
    type_name(True) -> "Boolean"
    type_name(None) -> "Nil"
  """
  if value is None:
    return "Nil"
  elif isinstance(value, bool):
    return "Boolean"
  elif isinstance(value, int):
    return "Integer"
  elif isinstance(value, str):
    return "String"
  elif isinstance(value, list):
    return "Array"
  elif isinstance(value, MinRubyHash):
    return "Hash"
  return type(value).__name__


def is_integer(value: Any) -> bool:
  """True for MinRuby Integers (Python ints that are not bools)"""
  return isinstance(value, int) and not isinstance(value, bool)


def node_kind(node: Any) -> Optional[str]:
  """
  Kind tag of an AST node, or None when the node is malformed

  Nodes are tuples (from the parser) or lists (from minruby_parse
  values) whose first slot is the kind string.
  """
  if isinstance(node, (tuple, list)) and node and isinstance(node[0], str):
    return node[0]
  return None


# ==================== HASH VALUES ====================

def hash_key(value: Any) -> Any:
  """
  Hashable, type-tagged form of a value, used to store Hash entries

  Booleans are tagged apart from integers and arrays become tuples, so
  1 and true are different keys and [1, 2] is a usable key.

  Examples:
    hash_key(1) -> ("int", 1)
    hash_key(True) -> ("bool", True)
    hash_key([1, "a"]) -> ("array", (("int", 1), ("str", "a")))
  """
  if value is None:
    return ("nil",)
  elif isinstance(value, bool):
    return ("bool", value)
  elif isinstance(value, int):
    return ("int", value)
  elif isinstance(value, str):
    return ("str", value)
  elif isinstance(value, (list, tuple)):
    return ("array", tuple(hash_key(elem) for elem in value))
  elif isinstance(value, MinRubyHash):
    return ("hash", frozenset((norm, hash_key(v)) for norm, v in value.normalized_items()))
  return ("object", id(value))


class MinRubyHash(MutableMapping):
  """
  Insertion-ordered Hash whose keys match the way MinRuby values compare

  Entries live under hash_key(key). The first key object stored for an
  entry is kept so iteration hands back MinRuby values, not tags.
  """

  def __init__(self, pairs=()):
    self._keys = {}
    self._values = {}
    if isinstance(pairs, Mapping):
      pairs = pairs.items()
    for key, value in pairs:
      self[key] = value

  def __getitem__(self, key):
    return self._values[hash_key(key)]

  def __setitem__(self, key, value):
    norm = hash_key(key)
    self._keys.setdefault(norm, key)
    self._values[norm] = value

  def __delitem__(self, key):
    norm = hash_key(key)
    del self._values[norm]
    del self._keys[norm]

  def __iter__(self):
    return iter(self._keys.values())

  def __len__(self):
    return len(self._values)

  def __eq__(self, other):
    if isinstance(other, Mapping) and not isinstance(other, MinRubyHash):
      other = MinRubyHash(other)
    if not isinstance(other, MinRubyHash):
      return NotImplemented
    return hash_key(self) == hash_key(other)

  __hash__ = None

  def normalized_items(self):
    return self._values.items()

  def __repr__(self):
    return f"MinRubyHash({list(self.items())!r})"


# ==================== INSPECTION ====================

STRING_ESCAPES = {
  '"': '\\"',
  '\\': '\\\\',
  '\n': '\\n',
  '\t': '\\t',
  '\r': '\\r',
  '\f': '\\f',
  '\v': '\\v',
  '\a': '\\a',
  '\b': '\\b',
  '\x1b': '\\e',
}


def inspect_string(text: str) -> str:
  """Ruby String#inspect: double quotes with escapes"""
  parts = []
  for i, ch in enumerate(text):
    if ch in STRING_ESCAPES:
      parts.append(STRING_ESCAPES[ch])
    elif ch == '#' and text[i + 1:i + 2] in ('{', '$', '@'):
      parts.append('\\#')
    elif ord(ch) < 0x20 or ord(ch) == 0x7f:
      parts.append(f"\\u{ord(ch):04X}")
    else:
      parts.append(ch)
  return '"' + ''.join(parts) + '"'


def inspect_value(value: Any, _seen: Optional[Set[int]] = None) -> str:
  """
  Textual form of a value as Ruby's `p` shows it

  Examples:
    inspect_value(None) -> "nil"
    inspect_value([1, "a"]) -> '[1, "a"]'
    inspect_value(MinRubyHash({1: 2})) -> "{1=>2}"
  """
  if value is None:
    return "nil"
  elif value is True:
    return "true"
  elif value is False:
    return "false"
  elif isinstance(value, int):
    return str(value)
  elif isinstance(value, str):
    return inspect_string(value)

  seen = _seen if _seen is not None else set()
  if isinstance(value, (list, tuple)):
    if id(value) in seen:
      return "[...]"
    seen.add(id(value))
    text = "[" + ", ".join(inspect_value(elem, seen) for elem in value) + "]"
    seen.discard(id(value))
    return text
  elif isinstance(value, MinRubyHash):
    if id(value) in seen:
      return "{...}"
    if not value:
      return "{}"
    seen.add(id(value))
    pairs = [f"{inspect_value(k, seen)}=>{inspect_value(v, seen)}" for k, v in value.items()]
    seen.discard(id(value))
    return "{" + ", ".join(pairs) + "}"
  return repr(value)


def pretty_format(value: Any, indent: int = 0, width: int = 80) -> str:
  """
  Multi-line dump in the layout of Ruby's `pp`

  Arrays that do not fit in the remaining width are broken one element
  per line, aligned one column right of the opening bracket.
  """
  flat = inspect_value(value)
  if indent + len(flat) <= width or not isinstance(value, (list, tuple)) or not value:
    return flat

  pad = " " * (indent + 1)
  parts = [pretty_format(elem, indent + 1, width) for elem in value]
  return "[" + (",\n" + pad).join(parts) + "]"


# ==================== ERROR MESSAGE BUILDERS ====================

def operation_error(op_name: str, left: Any, right: Any) -> ArithmeticFailure:
  """
  Generate an operand-type error for a binary operator

  Examples:
    operation_error("add", 1, "a") -> ArithmeticFailure("Cannot add Integer and String")
  """
  return ArithmeticFailure(f"Cannot {op_name} {type_name(left)} and {type_name(right)}")


def arity_error(func_name: str, expected: int, got: int) -> WrongNumberOfArguments:
  """Generate arity mismatch error"""
  return WrongNumberOfArguments(func_name, got, expected)


def validate_arity(func_name: str, args: List[Any], expected: Optional[int]) -> None:
  """
  Check a builtin's argument count

  Args:
    func_name: Function name for error messages
    args: Arguments (values or nodes) as passed
    expected: Required count, or None for variadic builtins

  Raises:
    WrongNumberOfArguments if the count differs
  """
  if expected is not None and len(args) != expected:
    raise arity_error(func_name, expected, len(args))


# ==================== BINARY OPERATION FACTORIES ====================

def binary_comparison_op(
  op: Callable[[Any, Any], bool],
  op_name: str,
  allowed_types: Optional[List[str]] = None
) -> Callable[[Any, Any], bool]:
  """
  Factory for binary comparison operations

  Both operands must have the same type, and that type must be in
  allowed_types.

  Examples:
    minruby_lt = binary_comparison_op(operator.lt, "compare")
    minruby_lt(1, 2) -> True
  """
  if allowed_types is None:
    allowed_types = ["Integer", "String"]

  def comparison(x: Any, y: Any) -> bool:
    if type_name(x) != type_name(y) or type_name(x) not in allowed_types:
      raise operation_error(op_name, x, y)
    return op(x, y)

  return comparison


def binary_arithmetic_op(
  op: Callable[[Any, Any], Any],
  op_name: str,
  allowed_types: Optional[List[str]] = None
) -> Callable[[Any, Any], Any]:
  """
  Factory for binary arithmetic operations over same-typed operands

  Examples:
    minruby_add = binary_arithmetic_op(operator.add, "add", ["Integer", "String", "Array"])
    minruby_add("a", "b") -> "ab"
  """
  if allowed_types is None:
    allowed_types = ["Integer"]

  def arithmetic(x: Any, y: Any) -> Any:
    if type_name(x) != type_name(y) or type_name(x) not in allowed_types:
      raise operation_error(op_name, x, y)
    return op(x, y)

  return arithmetic


def integer_division_op(op: Callable[[int, int], int], op_name: str) -> Callable[[Any, Any], int]:
  """
  Factory for / and %: Integer operands only, zero divisor is fatal

  Python's floor division and modulo agree with Ruby's Integer#/ and
  Integer#% for every sign combination.
  """
  def division(x: Any, y: Any) -> int:
    if not (is_integer(x) and is_integer(y)):
      raise operation_error(op_name, x, y)
    if y == 0:
      raise ArithmeticFailure("divided by 0")
    return op(x, y)

  return division


floor_divide = integer_division_op(operator.floordiv, "divide")
floor_modulo = integer_division_op(operator.mod, "take modulo of")
