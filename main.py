"""
MinRuby - Main Entry Point
A tree-walking evaluator for a small Ruby subset
"""

import sys
import argparse
from pathlib import Path
from typing import List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import MinRubyParseError, MinRubyRuntimeError, UnknownNodeKind, count_open_blocks
from interpreter import (
  create_debug_interpreter,
  create_interpreter,
  make_compat_context,
  make_execution_context
)
from parsing import KEYWORDS, create_debug_parser, create_parser, pretty_print_ast
from stdlib import BUILTIN_FUNCTIONS
from utilities import inspect_value

VERSION = "0.1.0"
DEFAULT_RECURSION_LIMIT = 10000


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='minruby',
      description='MinRuby - a tree-walking evaluator for a small Ruby subset',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.rb                    # Run a MinRuby script
  %(prog)s interp.rb fib.rb             # Extra args are left for minruby_load
  %(prog)s -i                           # Interactive mode
  %(prog)s --parse script.rb            # Parse and show the AST
  %(prog)s --debug script.rb            # Trace evaluation on stderr
  %(prog)s --compat script.rb           # Reproduce the classic evaluator's quirks
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help='MinRuby script file to execute'
  )

  parser.add_argument(
      'args',
      nargs=argparse.REMAINDER,
      help='Arguments left for the script (read by minruby_load)'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse file and show the AST'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Trace parsing and evaluation on stderr'
  )

  parser.add_argument(
      '--compat',
      action='store_true',
      help='Stop argument binding and hash pairing at the first falsy value, '
           're-evaluate fizzbuzz arguments per test'
  )

  parser.add_argument(
      '--recursion-limit',
      type=int,
      default=DEFAULT_RECURSION_LIMIT,
      metavar='N',
      help=f'Python recursion limit for deep MinRuby recursion (default {DEFAULT_RECURSION_LIMIT})'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=f'MinRuby v{VERSION}'
  )

  return parser


def make_context(script_args: List[str], compat: bool = False):
  """Execution context for a run, from the command-line options"""
  if compat:
    return make_compat_context(script_args)
  return make_execution_context(argv=script_args)


def print_runtime_error(e: MinRubyRuntimeError, source_name: str) -> None:
  """Error banner on stderr; unknown nodes also get a dump of the node"""
  print(f"\n{'='*70}", file=sys.stderr)
  print(f"Runtime Error in '{source_name}'", file=sys.stderr)
  print(f"{'='*70}", file=sys.stderr)
  print(f"\n{type(e).__name__}: {e.message}", file=sys.stderr)

  if isinstance(e, UnknownNodeKind):
    print("\nNode:", file=sys.stderr)
    print(e.dump, file=sys.stderr)

  print(f"\n{'='*70}\n", file=sys.stderr)


def parse_file_command(script_path: str, debug: bool = False) -> None:
  """Parse a MinRuby script file and show the AST"""
  try:
    parser = create_debug_parser() if debug else create_parser()
    ast = parser.parse_file(script_path)
    print(pretty_print_ast(ast))
  except MinRubyParseError as e:
    print(f"Parse error in '{script_path}': {e}", file=sys.stderr)
    sys.exit(1)


def run_script_file(script_path: str, script_args: Optional[List[str]] = None,
                    debug: bool = False, compat: bool = False) -> None:
  """Run a MinRuby script file; any failure ends the run with status 1"""
  context = make_context(script_args or [], compat)
  interpreter = create_debug_interpreter(context) if debug else create_interpreter(context=context)

  try:
    interpreter.run_file(script_path)
  except MinRubyParseError as e:
    print(f"Parse error in '{script_path}': {e}", file=sys.stderr)
    sys.exit(1)
  except MinRubyRuntimeError as e:
    print_runtime_error(e, script_path)
    sys.exit(1)
  except RecursionError:
    print(f"Runtime Error in '{script_path}': stack level too deep (SystemStackError)", file=sys.stderr)
    print("  Hint: raise the limit with --recursion-limit", file=sys.stderr)
    sys.exit(1)
  except Exception as e:
    print(f"Unexpected error while executing '{script_path}': {e}", file=sys.stderr)
    if debug:
      import traceback
      traceback.print_exc()
    sys.exit(1)


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.minruby_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    # First time, no history yet, or permission denied
    pass

  readline.set_history_length(1000)

  completions = sorted(set(KEYWORDS) | set(BUILTIN_FUNCTIONS)) + [
      ":parse", ":env", ":functions", ":help", "exit"
  ]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def show_help() -> None:
  print("REPL Commands:")
  print("  :parse <code>     - Show the parsed AST")
  print("  :env              - Show top-level variables")
  print("  :functions        - Show defined functions")
  print("  :help             - Show this help")
  print("  exit              - Exit REPL")
  print()
  print("Language features:")
  print("  x = 5                         - Assignment")
  print("  def add(a, b)\\n a + b\\n end    - Function definition")
  print("  p add(1, 2)                   - Call and print")
  print("  a = [1, 2]; a[0] = 3          - Arrays")
  print("  h = {\"k\" => 1}; h[\"k\"]        - Hashes")


def read_statement(prompt: str = "minruby> ", continuation: str = "minruby* ") -> str:
  """Read lines until every def/if/while block is closed"""
  code = input(prompt)
  while count_open_blocks(code) > 0:
    code += "\n" + input(continuation)
  return code


def run_interactive_mode(debug: bool = False, compat: bool = False) -> None:
  """Run MinRuby in interactive mode; variables and functions persist between inputs"""
  print(f"MinRuby v{VERSION} - Interactive Mode")
  print("Type 'exit' to quit, ':help' for commands")
  if READLINE_AVAILABLE:
    print("Readline enabled: Use ↑/↓ for history, Tab for completion")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  context = make_context([], compat)
  interpreter = create_debug_interpreter(context) if debug else create_interpreter(context=context)

  while True:
    try:
      code = read_statement()

      if code.strip() == "exit":
        break

      if not code.strip():
        continue

      if code.startswith(":parse "):
        try:
          print(pretty_print_ast(interpreter.parser.parse_string(code[7:])))
        except MinRubyParseError as e:
          print(f"Parse error: {e}")
        continue

      if code.strip() == ":env":
        if interpreter.environment:
          for name, value in interpreter.environment.items():
            print(f"  {name} = {inspect_value(value)}")
        else:
          print("  (no variables)")
        continue

      if code.strip() == ":functions":
        definitions = interpreter.global_env['function_definitions']
        if definitions:
          for name, func in definitions.items():
            print(f"  {name}({', '.join(func['params'])})")
        else:
          print("  (no functions)")
        continue

      if code.strip() == ":help":
        show_help()
        continue

      try:
        result = interpreter.run_source(code)
        print(f"=> {inspect_value(result)}")
      except MinRubyParseError as e:
        print(f"Parse error: {e}")
      except MinRubyRuntimeError as e:
        print(f"{type(e).__name__}: {e.message}")
        if isinstance(e, UnknownNodeKind):
          print(e.dump)
      except RecursionError:
        print("stack level too deep (SystemStackError)")

    except KeyboardInterrupt:
      print("\nGoodbye!")
      break
    except EOFError:
      print("\nGoodbye!")
      break


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for MinRuby"""
  if argv is None:
    argv = sys.argv[1:]

  arg_parser = create_arg_parser()
  args = arg_parser.parse_args(argv)

  sys.setrecursionlimit(args.recursion_limit)

  if args.interactive or not args.script:
    run_interactive_mode(debug=args.debug, compat=args.compat)
    return

  if not Path(args.script).exists():
    print(f"Error: Script file '{args.script}' does not exist", file=sys.stderr)
    sys.exit(1)

  if args.parse:
    parse_file_command(args.script, debug=args.debug)
  else:
    run_script_file(args.script, args.args, debug=args.debug, compat=args.compat)


if __name__ == "__main__":
  main()
