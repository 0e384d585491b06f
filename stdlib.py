"""
MinRuby Standard Library
Operator primitives and builtin functions for MinRuby
Values are plain Python objects: int, bool, str, None, list, plus MinRubyHash for Hashes
"""

from typing import Any, Callable, Dict, List
import operator
import re

from error_handling import (
  ArithmeticFailure,
  InvalidIndexOperation,
  InvalidIntegerLiteral,
  MinRubyLoadError
)
from utilities import (
  binary_arithmetic_op,
  binary_comparison_op,
  floor_divide,
  floor_modulo,
  MinRubyHash,
  inspect_value,
  is_integer,
  operation_error,
  type_name
)
import parsing


# ============================================================================
# TRUTHINESS AND EQUALITY
# ============================================================================

def is_truthy(value: Any) -> bool:
  """Only false and nil are falsy; 0 and "" are truthy"""
  return value is not None and value is not False


def values_equal(x: Any, y: Any) -> bool:
  """Structural equality that keeps booleans apart from integers"""
  if isinstance(x, bool) or isinstance(y, bool):
    return x is y
  if isinstance(x, list) and isinstance(y, list):
    return len(x) == len(y) and all(values_equal(a, b) for a, b in zip(x, y))
  if isinstance(x, MinRubyHash) and isinstance(y, MinRubyHash):
    return x == y
  if type_name(x) != type_name(y):
    return False
  return x == y


# ============================================================================
# ARITHMETIC AND COMPARISON
# ============================================================================

minruby_add = binary_arithmetic_op(operator.add, "add", ["Integer", "String", "Array"])


def minruby_sub(x: Any, y: Any) -> Any:
  """Integer subtraction, or Array difference"""
  if isinstance(x, list) and isinstance(y, list):
    return [elem for elem in x if not any(values_equal(elem, other) for other in y)]
  if not (is_integer(x) and is_integer(y)):
    raise operation_error("subtract", x, y)
  return x - y


def minruby_mul(x: Any, y: Any) -> Any:
  """Integer product, or String/Array repetition by an Integer count"""
  if is_integer(x) and is_integer(y):
    return x * y
  if isinstance(x, (str, list)) and is_integer(y):
    if y < 0:
      raise ArithmeticFailure(f"negative argument: {y}")
    return x * y
  raise operation_error("multiply", x, y)


minruby_div = floor_divide
minruby_mod = floor_modulo
minruby_lt = binary_comparison_op(operator.lt, "compare")
minruby_gt = binary_comparison_op(operator.gt, "compare")


def minruby_eq(x: Any, y: Any) -> bool:
  """Equality never fails, whatever the operand types"""
  return values_equal(x, y)


BUILTIN_OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    '+': minruby_add,
    '-': minruby_sub,
    '*': minruby_mul,
    '/': minruby_div,
    '%': minruby_mod,
    '>': minruby_gt,
    '<': minruby_lt,
    '==': minruby_eq,
}


# ============================================================================
# INDEXING
# ============================================================================

def _array_index(length: int, index: Any) -> int:
  if not is_integer(index):
    raise InvalidIndexOperation(f"no implicit conversion of {type_name(index)} into Integer")
  return index + length if index < 0 else index


def minruby_index_ref(receiver: Any, index: Any) -> Any:
  """recv[index] for arrays, hashes and strings; misses read as nil"""
  if isinstance(receiver, list):
    position = _array_index(len(receiver), index)
    if 0 <= position < len(receiver):
      return receiver[position]
    return None
  elif isinstance(receiver, MinRubyHash):
    return receiver.get(index)
  elif isinstance(receiver, str):
    position = _array_index(len(receiver), index)
    if 0 <= position < len(receiver):
      return receiver[position]
    return None
  raise InvalidIndexOperation(f"undefined method '[]' for {type_name(receiver)}")


def minruby_index_assign(receiver: Any, index: Any, value: Any) -> Any:
  """recv[index] = value; arrays grow with nil padding. Returns value"""
  if isinstance(receiver, list):
    position = _array_index(len(receiver), index)
    if position < 0:
      raise InvalidIndexOperation(
          f"index {index} too small for array; minimum: -{len(receiver)}")
    if position >= len(receiver):
      receiver.extend([None] * (position + 1 - len(receiver)))
    receiver[position] = value
    return value
  elif isinstance(receiver, MinRubyHash):
    receiver[index] = value
    return value
  raise InvalidIndexOperation(f"undefined method '[]=' for {type_name(receiver)}")


def make_hash(items: List[Any], truncate_on_falsy: bool = False) -> MinRubyHash:
  """
  Pair a flat [k1, v1, k2, v2, ...] list into a Hash

  With truncate_on_falsy the pairing stops at the first falsy key, the
  way a `while items[j]` loop does. Otherwise every pair is built and
  an odd trailing key maps to nil.
  """
  result = MinRubyHash()
  for j in range(0, len(items), 2):
    key = items[j]
    if truncate_on_falsy and not is_truthy(key):
      break
    result[key] = items[j + 1] if j + 1 < len(items) else None
  return result


# ============================================================================
# PRINT FUNCTIONS
# ============================================================================

def minruby_p(*values: Any) -> Any:
  """Print each value's inspect form on its own line"""
  for value in values:
    print(inspect_value(value))

  if not values:
    return None
  elif len(values) == 1:
    return values[0]
  return list(values)


# ============================================================================
# CONVERSION
# ============================================================================

INTEGER_LITERAL = re.compile(
    r"\s*([+-]?)(0[bBoOxXdD]|0(?=[0-9_]))?([0-9a-fA-F]+(?:_[0-9a-fA-F]+)*)\s*")

INTEGER_BASES = {'b': 2, 'o': 8, 'x': 16, 'd': 10, '': 8}


def minruby_integer(value: Any) -> int:
  """Integer(x): pass Integers through, parse Ruby integer literals"""
  if is_integer(value):
    return value
  if not isinstance(value, str):
    raise InvalidIntegerLiteral(f"can't convert {type_name(value)} into Integer")

  match = INTEGER_LITERAL.fullmatch(value)
  if match is None:
    raise InvalidIntegerLiteral(f"invalid value for Integer(): {inspect_value(value)}")

  sign, prefix, digits = match.groups()
  base = INTEGER_BASES[prefix[1:].lower()] if prefix is not None else 10
  try:
    number = int(digits.replace('_', ''), base)
  except ValueError:
    raise InvalidIntegerLiteral(f"invalid value for Integer(): {inspect_value(value)}") from None
  return -number if sign == '-' else number


def minruby_fizzbuzz(read_arg: Callable[[], Any]) -> Any:
  """
  "FizzBuzz", "Fizz", "Buzz" or the number itself

  The argument is fetched through read_arg before each test, so the
  caller decides whether the argument expression runs once or per test.
  """
  if minruby_mod(read_arg(), 15) == 0:
    return "FizzBuzz"
  elif minruby_mod(read_arg(), 3) == 0:
    return "Fizz"
  elif minruby_mod(read_arg(), 5) == 0:
    return "Buzz"
  return read_arg()


# ============================================================================
# LOADING
# ============================================================================

BUILTIN_FEATURES = ("minruby", "pp")


def minruby_require(name: Any, context: Dict) -> bool:
  """Builtin features only; true on first load, false after"""
  if name not in BUILTIN_FEATURES:
    raise MinRubyLoadError(f"cannot load such file -- {name}")
  if name in context['loaded_features']:
    return False
  context['loaded_features'].add(name)
  return True


def minruby_parse(source: Any) -> List[Any]:
  """Parse program text and hand the AST back as nested arrays"""
  if not isinstance(source, str):
    raise MinRubyLoadError(f"no implicit conversion of {type_name(source)} into String")
  return parsing.ast_to_value(parsing.parse_program(source))


def minruby_load(context: Dict) -> str:
  """Read the program named by the next remaining command-line argument"""
  try:
    return parsing.minruby_load(context['argv'])
  except IndexError:
    raise MinRubyLoadError("minruby_load: no program file left in arguments") from None
  except (OSError, UnicodeDecodeError) as e:
    raise MinRubyLoadError(f"minruby_load: {e}") from e


# ============================================================================
# BUILTIN FUNCTION TABLE
# ============================================================================

# arity None means variadic; lazy_args builtins get one reader callable
# per argument instead of values; needs_context builtins get the run context
BUILTIN_FUNCTIONS: Dict[str, Dict[str, Any]] = {
    'p': {'func': minruby_p, 'arity': None},
    'Integer': {'func': minruby_integer, 'arity': 1},
    'fizzbuzz': {'func': minruby_fizzbuzz, 'arity': 1, 'lazy_args': True},
    'require': {'func': minruby_require, 'arity': 1, 'needs_context': True},
    'minruby_parse': {'func': minruby_parse, 'arity': 1},
    'minruby_load': {'func': minruby_load, 'arity': 0, 'needs_context': True},
}
