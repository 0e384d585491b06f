"""
Evaluator tests for MinRuby
Hand-built ASTs exercise the dispatcher directly; parsed programs check the whole pipeline
"""

import pytest
from interpreter import (
  bind_arguments,
  create_interpreter,
  eval_program,
  evaluate,
  make_compat_context,
  make_execution_context,
  make_global_env
)
from error_handling import (
  ArithmeticFailure,
  InvalidIntegerLiteral,
  UnknownBuiltinFunction,
  UnknownNodeKind,
  WrongNumberOfArguments
)


def lit(value):
  return ("lit", value)


def ref(name):
  return ("var_ref", name)


def call(name, *args):
  return ("func_call", name, *args)


def run(node, context=None):
  value, _, _ = eval_program(node, context=context)
  return value


class TestBasicEvaluation:
  """Test literal, arithmetic and statement evaluation"""

  def test_literal(self, env, genv):
    assert evaluate(lit(7), env, genv) == 7

  def test_arithmetic_precedence_by_shape(self):
    assert run(("+", lit(1), ("*", lit(2), lit(3)))) == 7

  def test_assign_then_reference(self):
    assert run(("stmts", ("var_assign", "x", lit(5)), ref("x"))) == 5

  def test_assignment_returns_value(self, env, genv):
    assert evaluate(("var_assign", "y", lit(3)), env, genv) == 3
    assert env == {"y": 3}

  def test_unbound_variable_is_nil(self):
    assert run(ref("nope")) is None

  def test_empty_stmts_is_nil(self):
    assert run(("stmts",)) is None

  @pytest.mark.parametrize("op, a, b, expected", [
      ("-", 10, 4, 6),
      ("/", 7, 2, 3),
      ("%", 7, 2, 1),
      ("/", -7, 2, -4),
      ("%", -7, 2, 1),
      ("<", 1, 2, True),
      (">", 1, 2, False),
      ("==", 2, 2, True),
  ])
  def test_operators(self, op, a, b, expected):
    assert run((op, lit(a), lit(b))) == expected

  def test_division_by_zero_is_fatal(self):
    with pytest.raises(ArithmeticFailure, match="divided by 0"):
      run(("/", lit(1), lit(0)))

  def test_operands_evaluate_left_to_right(self, capsys):
    run(("+", call("p", lit(1)), call("p", lit(2))))
    assert capsys.readouterr().out == "1\n2\n"

  def test_unknown_node_kind(self):
    with pytest.raises(UnknownNodeKind) as exc_info:
      run(("<=", lit(1), lit(2)))
    assert exc_info.value.kind == "<="
    assert exc_info.value.dump == '["<=", ["lit", 1], ["lit", 2]]'

  def test_malformed_node(self):
    with pytest.raises(UnknownNodeKind):
      run(42)

  def test_list_nodes_evaluate_like_tuples(self):
    assert run(["stmts", ["var_assign", "x", ["lit", 2]], ["*", ["var_ref", "x"], ["lit", 3]]]) == 6


class TestControlFlow:
  """Test if/while truthiness"""

  @pytest.mark.parametrize("cond, expected", [
      (0, "yes"),
      ("", "yes"),
      (True, "yes"),
      (False, "no"),
      (None, "no"),
  ])
  def test_if_truthiness(self, cond, expected):
    assert run(("if", lit(cond), lit("yes"), lit("no"))) == expected

  def test_if_without_else_is_nil(self):
    assert run(("if", lit(False), lit(1), None)) is None

  def test_if_with_short_node(self):
    assert run(("if", lit(None), lit(1))) is None

  def test_only_one_branch_runs(self, capsys):
    run(("if", lit(True), call("p", lit("then")), call("p", lit("else"))))
    assert capsys.readouterr().out == '"then"\n'

  def test_while_counts(self):
    program = ("stmts",
               ("var_assign", "i", lit(0)),
               ("var_assign", "sum", lit(0)),
               ("while", ("<", ref("i"), lit(5)),
                ("stmts",
                 ("var_assign", "sum", ("+", ref("sum"), ref("i"))),
                 ("var_assign", "i", ("+", ref("i"), lit(1))))),
               ref("sum"))
    assert run(program) == 10

  def test_while_returns_nil(self):
    assert run(("while", lit(False), lit(1))) is None


class TestFunctions:
  """Test definitions, calls and argument binding"""

  def test_define_and_call(self):
    program = ("stmts",
               ("func_def", "foo", ["a", "b"], ("+", ref("a"), ref("b"))),
               call("foo", lit(2), lit(3)))
    assert run(program) == 5

  def test_func_def_records_definition(self, env, genv):
    assert evaluate(("func_def", "f", ["x"], ref("x")), env, genv) is None
    assert genv['function_definitions']["f"] == {'params': ["x"], 'body': ref("x")}

  def test_callee_locals_do_not_leak(self):
    program = ("stmts",
               ("func_def", "f", [], ("var_assign", "secret", lit(1))),
               call("f"),
               ref("secret"))
    assert run(program) is None

  def test_callee_cannot_see_caller_locals(self):
    program = ("stmts",
               ("var_assign", "x", lit(10)),
               ("func_def", "f", [], ref("x")),
               call("f"))
    assert run(program) is None

  def test_redefinition_replaces(self):
    program = ("stmts",
               ("func_def", "f", [], lit(1)),
               ("func_def", "f", [], lit(2)),
               call("f"))
    assert run(program) == 2

  def test_user_function_shadows_builtin(self, capsys):
    program = ("stmts",
               ("func_def", "p", ["x"], ("*", ref("x"), lit(2))),
               call("p", lit(4)))
    assert run(program) == 8
    assert capsys.readouterr().out == ""

  def test_missing_arguments_are_nil(self):
    program = ("stmts",
               ("func_def", "f", ["a", "b"], ref("b")),
               call("f", lit(1)))
    assert run(program) is None

  def test_recursion(self):
    fib_body = ("if", ("<", ref("n"), lit(2)), ref("n"),
                ("+", call("fib", ("-", ref("n"), lit(1))), call("fib", ("-", ref("n"), lit(2)))))
    program = ("stmts", ("func_def", "fib", ["n"], fib_body), call("fib", lit(15)))
    assert run(program) == 610

  def test_falsy_argument_binds_by_default(self):
    program = ("stmts",
               ("func_def", "f", ["a", "b"], ("ary_new", ref("a"), ref("b"))),
               call("f", lit(False), lit(10)))
    assert run(program) == [False, 10]

  def test_falsy_argument_truncates_in_compat_mode(self, compat_context):
    program = ("stmts",
               ("func_def", "f", ["a", "b"], ("ary_new", ref("a"), ref("b"))),
               call("f", lit(False), lit(10)))
    assert run(program, compat_context) == [None, None]

  def test_compat_binds_up_to_first_falsy(self, compat_context):
    program = ("stmts",
               ("func_def", "f", ["a", "b", "c"], ("ary_new", ref("a"), ref("b"), ref("c"))),
               call("f", lit(1), lit(None), lit(3)))
    assert run(program, compat_context) == [1, None, None]

  def test_bind_arguments(self):
    context = make_execution_context()
    assert bind_arguments(["a", "b"], [1, 2, 3], context) == {"a": 1, "b": 2}
    assert bind_arguments(["a", "b"], [1], context) == {"a": 1}

  def test_arguments_evaluated_in_caller_env(self):
    program = ("stmts",
               ("var_assign", "n", lit(4)),
               ("func_def", "double", ["n"], ("*", ref("n"), lit(2))),
               call("double", ("+", ref("n"), lit(1))))
    assert run(program) == 10


class TestBuiltinCalls:
  """Test dispatch to the builtin table"""

  def test_p_returns_argument(self, capsys):
    assert run(call("p", lit("hi"))) == "hi"
    assert capsys.readouterr().out == '"hi"\n'

  def test_integer(self):
    assert run(call("Integer", lit("42"))) == 42

  def test_integer_invalid(self):
    with pytest.raises(InvalidIntegerLiteral):
      run(call("Integer", lit("4x2")))

  @pytest.mark.parametrize("n, expected", [
      (15, "FizzBuzz"),
      (9, "Fizz"),
      (10, "Buzz"),
      (2, 2),
  ])
  def test_fizzbuzz(self, n, expected):
    assert run(call("fizzbuzz", lit(n))) == expected

  def test_fizzbuzz_evaluates_argument_once(self, capsys):
    assert run(call("fizzbuzz", call("p", lit(7)))) == 7
    assert capsys.readouterr().out == "7\n"

  def test_fizzbuzz_reevaluates_in_compat_mode(self, capsys, compat_context):
    assert run(call("fizzbuzz", call("p", lit(7))), compat_context) == 7
    assert capsys.readouterr().out == "7\n7\n7\n7\n"

  def test_fizzbuzz_side_effects_repeat_in_compat_mode(self, compat_context):
    program = ("stmts",
               ("var_assign", "i", lit(0)),
               call("fizzbuzz", ("var_assign", "i", ("+", ref("i"), lit(1)))),
               ref("i"))
    assert run(program, compat_context) == 4

  def test_unknown_builtin(self):
    with pytest.raises(UnknownBuiltinFunction, match="unknown builtin function: nope"):
      run(call("nope", lit(1)))

  def test_builtin_arity(self):
    with pytest.raises(WrongNumberOfArguments):
      run(call("Integer"))

  def test_require(self):
    context = make_execution_context()
    assert run(call("require", lit("minruby")), context) is True
    assert run(call("require", lit("minruby")), context) is False

  def test_minruby_parse_result_can_be_evaluated(self):
    parsed = run(call("minruby_parse", lit("x = 6\nx * 7")))
    assert run(parsed) == 42


class TestCollections:
  """Test array and hash nodes"""

  def test_array_read(self):
    program = ("stmts",
               ("var_assign", "a", ("ary_new", lit(1), lit(2), lit(3))),
               ("ary_ref", ref("a"), lit(1)))
    assert run(program) == 2

  def test_array_write_then_read(self):
    program = ("stmts",
               ("var_assign", "a", ("ary_new", lit(1), lit(2), lit(3))),
               ("ary_assign", ref("a"), lit(1), lit(99)),
               ("ary_ref", ref("a"), lit(1)))
    assert run(program) == 99

  def test_array_assign_returns_value(self):
    program = ("stmts",
               ("var_assign", "a", ("ary_new",)),
               ("ary_assign", ref("a"), lit(2), lit("x")))
    assert run(program) == "x"

  def test_array_grows_with_nil(self):
    program = ("stmts",
               ("var_assign", "a", ("ary_new",)),
               ("ary_assign", ref("a"), lit(2), lit("x")),
               ref("a"))
    assert run(program) == [None, None, "x"]

  def test_array_literal_keeps_falsy_elements(self, compat_context):
    node = ("ary_new", lit(1), lit(None), lit(False), lit(4))
    assert run(node) == [1, None, False, 4]
    assert run(node, compat_context) == [1, None, False, 4]

  def test_out_of_range_read_is_nil(self):
    assert run(("ary_ref", ("ary_new", lit(1)), lit(5))) is None

  def test_hash_literal(self):
    node = ("hash_new", lit("a"), lit(1), lit("b"), lit(2))
    assert run(node) == {"a": 1, "b": 2}

  def test_hash_read_and_write(self):
    program = ("stmts",
               ("var_assign", "h", ("hash_new",)),
               ("ary_assign", ref("h"), lit("k"), lit(5)),
               ("ary_ref", ref("h"), lit("k")))
    assert run(program) == 5

  def test_array_keys(self):
    program = ("stmts",
               ("var_assign", "h", ("hash_new",)),
               ("ary_assign", ref("h"), ("ary_new", lit(1), lit(2)), lit(5)),
               ("ary_ref", ref("h"), ("ary_new", lit(1), lit(2))))
    assert run(program) == 5

  def test_integer_and_boolean_keys_stay_separate(self):
    h = run(("hash_new", lit(1), lit("a"), lit(True), lit("b"), lit(0), lit("c"), lit(False), lit("d")))
    assert len(h) == 4
    assert list(h.items()) == [(1, "a"), (True, "b"), (0, "c"), (False, "d")]
    assert [type(key) for key in h] == [int, bool, int, bool]
    assert run(("ary_ref", ("hash_new", lit(1), lit("a")), lit(True))) is None

  def test_hash_truncates_at_falsy_key_in_compat_mode(self, compat_context):
    node = ("hash_new", lit(1), lit(2), lit(None), lit(3), lit(4), lit(5))
    assert run(node) == {1: 2, None: 3, 4: 5}
    assert run(node, compat_context) == {1: 2}

  def test_assignment_order(self, capsys):
    run(("ary_assign",
         ("ary_new", call("p", lit(1))),
         call("p", lit(0)),
         call("p", lit(2))))
    assert capsys.readouterr().out == "1\n0\n2\n"


class TestInterpreterFactory:
  """Test the interpreter object used by the CLI"""

  def test_run_source(self, capsys):
    interpreter = create_interpreter()
    assert interpreter.run_source("p 1 + 2") == 3
    assert capsys.readouterr().out == "3\n"

  @pytest.mark.parametrize("source, expected", [
      ("1 + 2 * 3", 7),
      ("-(1 * 2) + 3", 1),
      ("(1 + 2) * 3", 9),
      ("10 - 4 - 3", 3),
      ("2 * 3 < 1 + 6", True),
      ("7 % 3 * 2 == 2", True),
  ])
  def test_mixed_precedence_from_source(self, source, expected):
    result = create_interpreter().run_source(source)
    assert result == expected
    assert type(result) is type(expected)

  def test_hash_keys_from_source(self, capsys):
    interpreter = create_interpreter()
    interpreter.run_source('h = {1 => "a", true => "b"}\nh[[1, 2]] = 5\np h[[1, 2]]\np h[true]\np h')
    assert capsys.readouterr().out == '5\n"b"\n{1=>"a", true=>"b", [1, 2]=>5}\n'

  def test_state_persists_between_runs(self):
    interpreter = create_interpreter()
    interpreter.run_source("def sq(x)\n  x * x\nend")
    interpreter.run_source("y = sq(4)")
    assert interpreter.run_source("y + 1") == 17
    assert interpreter.environment == {"y": 16}
    assert "sq" in interpreter.global_env['function_definitions']

  def test_separate_interpreters_are_isolated(self):
    first = create_interpreter()
    second = create_interpreter()
    first.run_source("x = 1")
    assert second.run_source("x") is None

  def test_run_file(self, tmp_path, capsys):
    script = tmp_path / "hello.rb"
    script.write_text('p "hello"\n')
    create_interpreter().run_file(str(script))
    assert capsys.readouterr().out == '"hello"\n'

  def test_compat_context(self):
    interpreter = create_interpreter(context=make_compat_context())
    interpreter.run_source("def f(a, b)\n  b\nend")
    assert interpreter.run_source("f(nil, 2)") is None

  def test_default_global_env(self):
    assert make_global_env() == {'function_definitions': {}}
