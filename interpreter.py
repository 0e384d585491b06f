"""
MinRuby Interpreter
Tree-walking evaluator over the tagged AST produced by parsing.py
Environments and function definitions are plain dictionaries threaded through every call
"""

from typing import Any, Callable, Dict, List, Optional, Tuple
import sys

from error_handling import UnknownBuiltinFunction, UnknownNodeKind
from utilities import node_kind, validate_arity
from stdlib import (
  BUILTIN_FUNCTIONS,
  BUILTIN_OPERATORS,
  is_truthy,
  make_hash,
  minruby_index_assign,
  minruby_index_ref
)
import parsing


# ============================================================================
# DATA STRUCTURES (Plain Dictionaries)
# ============================================================================

def make_local_env(bindings: Optional[Dict] = None) -> Dict:
  """Create a flat local environment for one activation (no parent scope)"""
  return dict(bindings or {})


def make_global_env() -> Dict:
  """Create the run-wide environment holding the function-definition table"""
  return {
      'function_definitions': {}
  }


def make_function(params: List[str], body: Any) -> Dict:
  """Create a user function definition"""
  return {
      'params': list(params),
      'body': body
  }


def make_execution_context(truncate_on_falsy: bool = False,
                           reevaluate_fizzbuzz_arg: bool = False,
                           argv: Optional[List[str]] = None) -> Dict:
  """
  Create the per-run execution context

  truncate_on_falsy: argument binding and hash pairing stop at the first
    falsy value, as the classic evaluator's `while args[i]` loops do.
  reevaluate_fizzbuzz_arg: fizzbuzz evaluates its argument expression
    once per divisibility test instead of once per call.
  argv: remaining command-line arguments, consumed by minruby_load.
  """
  return {
      'truncate_on_falsy': truncate_on_falsy,
      'reevaluate_fizzbuzz_arg': reevaluate_fizzbuzz_arg,
      'argv': list(argv or []),
      'loaded_features': set()
  }


def make_compat_context(argv: Optional[List[str]] = None) -> Dict:
  """Execution context reproducing the classic evaluator's quirks"""
  return make_execution_context(truncate_on_falsy=True, reevaluate_fizzbuzz_arg=True, argv=argv)


# ============================================================================
# ENVIRONMENT OPERATIONS
# ============================================================================

def env_lookup(env: Dict, name: str) -> Any:
  """Unbound names read as nil"""
  return env.get(name)


def env_assign(env: Dict, name: str, value: Any) -> Any:
  """Create or overwrite a binding in place; returns the value"""
  env[name] = value
  return value


def define_function(genv: Dict, name: str, params: List[str], body: Any) -> None:
  """Store (or replace) a definition in the function table"""
  genv['function_definitions'][name] = make_function(params, body)


def lookup_function(genv: Dict, name: str) -> Optional[Dict]:
  return genv['function_definitions'].get(name)


def bind_arguments(params: List[str], args: List[Any], context: Dict) -> Dict:
  """
  Build the callee's environment from positional arguments

  Parameters beyond the supplied arguments stay unbound; surplus
  arguments are dropped. With truncate_on_falsy the binding stops at the
  first falsy argument, which is left unbound along with everything after it.
  """
  func_env = make_local_env()
  for param, arg in zip(params, args):
    if context['truncate_on_falsy'] and not is_truthy(arg):
      break
    func_env[param] = arg
  return func_env


# ============================================================================
# EVALUATION FUNCTIONS
# ============================================================================

def evaluate(node: Any, env: Dict, genv: Dict, debug: bool = False, context: Optional[Dict] = None) -> Any:
  """
  Evaluate an AST node and return its value.
  env is the current activation's local environment and is updated in
  place by assignments; genv is shared by the whole run.
  """
  if context is None:
    context = make_execution_context()

  kind = node_kind(node)

  if debug:
    print(f"Evaluating: {kind}", file=sys.stderr)

  if kind == "lit":
    return node[1]
  elif kind in BUILTIN_OPERATORS:
    return eval_binary(node, env, genv, debug, context)
  elif kind == "stmts":
    return eval_stmts(node, env, genv, debug, context)
  elif kind == "var_ref":
    return env_lookup(env, node[1])
  elif kind == "var_assign":
    return eval_var_assign(node, env, genv, debug, context)
  elif kind == "if":
    return eval_if(node, env, genv, debug, context)
  elif kind == "while":
    return eval_while(node, env, genv, debug, context)
  elif kind == "func_def":
    return eval_func_def(node, env, genv, debug, context)
  elif kind == "func_call":
    return eval_func_call(node, env, genv, debug, context)
  elif kind == "ary_new":
    return eval_ary_new(node, env, genv, debug, context)
  elif kind == "ary_ref":
    return eval_ary_ref(node, env, genv, debug, context)
  elif kind == "ary_assign":
    return eval_ary_assign(node, env, genv, debug, context)
  elif kind == "hash_new":
    return eval_hash_new(node, env, genv, debug, context)
  else:
    raise UnknownNodeKind(node)


def eval_binary(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  """Evaluate both operands, left first, then apply the operator"""
  left = evaluate(node[1], env, genv, debug, context)
  right = evaluate(node[2], env, genv, debug, context)
  return BUILTIN_OPERATORS[node[0]](left, right)


def eval_stmts(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  """Value of the last statement; an empty sequence is nil"""
  result = None
  for child in node[1:]:
    result = evaluate(child, env, genv, debug, context)
  return result


def eval_var_assign(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  value = evaluate(node[2], env, genv, debug, context)
  return env_assign(env, node[1], value)


def eval_if(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  """Evaluate exactly one branch; a missing branch is nil"""
  cond = evaluate(node[1], env, genv, debug, context)
  if is_truthy(cond):
    branch = node[2]
  else:
    branch = node[3] if len(node) > 3 else None

  if branch is None:
    return None
  return evaluate(branch, env, genv, debug, context)


def eval_while(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> None:
  while is_truthy(evaluate(node[1], env, genv, debug, context)):
    evaluate(node[2], env, genv, debug, context)
  return None


def eval_func_def(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> None:
  define_function(genv, node[1], node[2], node[3])
  if debug:
    print(f"Defined function: {node[1]}({', '.join(node[2])})", file=sys.stderr)
  return None


def eval_func_call(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  """
  Resolve the callee (user definitions shadow builtins) and run it

  A user function runs its body in a fresh environment holding only its
  bound parameters, so nothing leaks between caller and callee except
  through genv.
  """
  name = node[1]
  arg_nodes = list(node[2:])

  func = lookup_function(genv, name)
  if func is None:
    return eval_builtin_call(name, arg_nodes, node, env, genv, debug, context)

  args = [evaluate(arg, env, genv, debug, context) for arg in arg_nodes]
  func_env = bind_arguments(func['params'], args, context)

  if debug:
    print(f"Calling {name} with {func_env}", file=sys.stderr)

  return evaluate(func['body'], func_env, genv, debug, context)


def eval_builtin_call(name: str, arg_nodes: List[Any], node: Any, env: Dict, genv: Dict,
                      debug: bool, context: Dict) -> Any:
  """Dispatch a call with no user definition to the builtin table"""
  if name not in BUILTIN_FUNCTIONS:
    raise UnknownBuiltinFunction(name, node)

  builtin = BUILTIN_FUNCTIONS[name]
  validate_arity(name, arg_nodes, builtin['arity'])

  if builtin.get('lazy_args'):
    args = [make_arg_reader(arg, env, genv, debug, context) for arg in arg_nodes]
  else:
    args = [evaluate(arg, env, genv, debug, context) for arg in arg_nodes]

  if debug:
    print(f"Calling builtin {name}", file=sys.stderr)

  if builtin.get('needs_context'):
    return builtin['func'](*args, context=context)
  return builtin['func'](*args)


def make_arg_reader(arg_node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Callable[[], Any]:
  """
  Reader for a lazily passed argument

  Normally the argument is evaluated once, up front, and every read
  returns that value. With reevaluate_fizzbuzz_arg each read evaluates
  the expression again, repeating its side effects.
  """
  if context['reevaluate_fizzbuzz_arg']:
    return lambda: evaluate(arg_node, env, genv, debug, context)

  value = evaluate(arg_node, env, genv, debug, context)
  return lambda: value


def eval_ary_new(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> List[Any]:
  return [evaluate(elem, env, genv, debug, context) for elem in node[1:]]


def eval_ary_ref(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  receiver = evaluate(node[1], env, genv, debug, context)
  index = evaluate(node[2], env, genv, debug, context)
  return minruby_index_ref(receiver, index)


def eval_ary_assign(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Any:
  receiver = evaluate(node[1], env, genv, debug, context)
  index = evaluate(node[2], env, genv, debug, context)
  value = evaluate(node[3], env, genv, debug, context)
  return minruby_index_assign(receiver, index, value)


def eval_hash_new(node: Any, env: Dict, genv: Dict, debug: bool, context: Dict) -> Dict:
  """Evaluate the flat key/value list in order, then pair it up"""
  items = [evaluate(item, env, genv, debug, context) for item in node[1:]]
  return make_hash(items, context['truncate_on_falsy'])


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(ast: Any, debug: bool = False, context: Optional[Dict] = None,
                 env: Optional[Dict] = None, genv: Optional[Dict] = None) -> Tuple[Any, Dict, Dict]:
  """
  Evaluate a whole program at top level.
  Returns (final value, top-level environment, global environment) so a
  caller can keep evaluating against the same state.
  """
  if context is None:
    context = make_execution_context()
  if env is None:
    env = make_local_env()
  if genv is None:
    genv = make_global_env()

  value = evaluate(ast, env, genv, debug, context)
  return value, env, genv


# ============================================================================
# FACTORY FUNCTIONS (used by main.py)
# ============================================================================

def create_interpreter(debug: bool = False, context: Optional[Dict] = None):
  """
  Factory function returning an interpreter whose top-level environment
  and function table persist across runs (for the interactive prompt)
  """
  run_context = context if context is not None else make_execution_context()
  parser = parsing.create_debug_parser() if debug else parsing.create_parser()
  top_env = make_local_env()
  global_env = make_global_env()

  def evaluate_node(node):
    value, _, _ = eval_program(node, debug, run_context, top_env, global_env)
    return value

  def run_source(text, filename="<input>"):
    return evaluate_node(parser.parse_string(text, filename))

  def run_file(path):
    return evaluate_node(parser.parse_file(path))

  return type('Interpreter', (), {
      'run_source': lambda self, text, filename="<input>": run_source(text, filename),
      'run_file': lambda self, path: run_file(path),
      'evaluate': lambda self, node: evaluate_node(node),
      'parser': parser,
      'context': run_context,
      'environment': top_env,
      'global_env': global_env
  })()


def create_debug_interpreter(context: Optional[Dict] = None):
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True, context=context)
