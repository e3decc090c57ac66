"""
Test suite for the monkey evaluator
"""

import pytest

from monkey import (
    FALSE,
    INT64_MIN,
    NULL,
    TRUE,
    Array,
    Boolean,
    Environment,
    Error,
    Function,
    Hash,
    Integer,
    Lexer,
    Parser,
    SourceLocation,
    String,
    eval_source,
    evaluate,
)


class TestArithmetic:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("5", 5),
            ("10", 10),
            ("-5", -5),
            ("-10", -10),
            ("5 + 5 + 5 + 5 - 10", 10),
            ("2 * 2 * 2 * 2 * 2", 32),
            ("-50 + 100 + -50", 0),
            ("5 * 2 + 10", 20),
            ("5 + 2 * 10", 25),
            ("20 + 2 * -10", 0),
            ("50 / 2 * 2 + 10", 60),
            ("2 * (5 + 10)", 30),
            ("3 * 3 * 3 + 10", 37),
            ("3 * (3 * 3) + 10", 37),
            ("(5 + 10 * 2 + 15 / 3) * 2 + -10", 50),
        ],
    )
    def test_integer_expressions(self, run, source, expected):
        assert run(source) == Integer(expected)

    @pytest.mark.parametrize(
        "source, expected",
        [("7 / 2", 3), ("-7 / 2", -3), ("7 / -2", -3), ("-7 / -2", 3)],
    )
    def test_division_truncates_toward_zero(self, run, source, expected):
        assert run(source) == Integer(expected)

    def test_division_by_zero(self, run):
        assert run("1 / 0") == Error("division by zero")

    def test_overflow_wraps(self, run):
        assert run("9223372036854775807 + 1") == Integer(INT64_MIN)
        assert run("-9223372036854775807 - 2") == Integer(9223372036854775807)


class TestBooleans:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("true", True),
            ("false", False),
            ("1 < 2", True),
            ("1 > 2", False),
            ("1 < 1", False),
            ("1 == 1", True),
            ("1 != 1", False),
            ("1 != 2", True),
            ("true == true", True),
            ("false == false", True),
            ("true == false", False),
            ("true != false", True),
            ("(1 < 2) == true", True),
            ("(1 > 2) == true", False),
        ],
    )
    def test_boolean_expressions(self, run, source, expected):
        assert run(source) is Boolean.new(expected)

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("!true", FALSE),
            ("!false", TRUE),
            ("!5", FALSE),
            ("!!true", TRUE),
            ("!!false", FALSE),
            ("!!5", TRUE),
            ('!""', FALSE),
            ("![]", FALSE),
        ],
    )
    def test_bang_operator(self, run, source, expected):
        assert run(source) is expected

    def test_null_equality(self, run):
        assert run("if (false) { 1 } == if (false) { 2 }") is TRUE


class TestConditionals:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("if (true) { 10 }", Integer(10)),
            ("if (false) { 10 }", NULL),
            ("if (1) { 10 }", Integer(10)),
            ("if (0) { 10 }", Integer(10)),
            ("if (1 < 2) { 10 }", Integer(10)),
            ("if (1 > 2) { 10 }", NULL),
            ("if (1 > 2) { 10 } else { 20 }", Integer(20)),
            ("if (1 < 2) { 10 } else { 20 }", Integer(10)),
            ("if (true) { }", NULL),
            ("if (true) { let x = 1; }", NULL),
        ],
    )
    def test_if_else(self, run, source, expected):
        assert run(source) == expected


class TestReturns:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("return 10;", 10),
            ("return 10; 9;", 10),
            ("return 2 * 5; 9;", 10),
            ("9; return 2 * 5; 9;", 10),
            ("if (10 > 1) { return 10; }", 10),
            ("if (10 > 1) { if (10 > 1) { return 10; } return 1; }", 10),
            ("let f = fn(x) { return x; x + 10; }; f(10);", 10),
            (
                "let f = fn(x) { let result = x + 10; return result; return 10; }; f(10);",
                20,
            ),
        ],
    )
    def test_return_statements(self, run, source, expected):
        assert run(source) == Integer(expected)

    def test_bare_return(self, run):
        assert run("return;") is NULL
        assert run("let f = fn() { return; 5 }; f()") is NULL

    def test_return_inside_let_initializer_unwinds(self, run):
        source = "let f = fn() { let x = if (true) { return 5; }; 10 }; f()"
        assert run(source) == Integer(5)

    def test_return_only_leaves_innermost_function(self, run):
        source = """
        let inner = fn() { return 1; };
        let outer = fn() { inner(); 2 };
        outer()
        """
        assert run(source) == Integer(2)

    @pytest.mark.parametrize(
        "body",
        [
            "1 + if (true) { return 2; }",
            "if (true) { return 2; } + 1",
            "-if (true) { return 2; }",
            "[if (true) { return 2; }, 3]",
            "{if (true) { return 2; }: 1}",
            "{1: if (true) { return 2; }}",
            "[1, 2, 3][if (true) { return 2; }]",
            "if (true) { return 2; }[0]",
            "if (true) { return 2; }()",
            "len(if (true) { return 2; })",
            "if (if (true) { return 2; }) { 3 }",
            "return if (true) { return 2; };",
        ],
    )
    def test_return_from_operand_leaves_function(self, run, body):
        assert run(f"let f = fn() {{ {body} }}; f()") == Integer(2)

    def test_return_from_argument_is_not_dropped(self, run):
        source = """
        let g = fn(x) { x };
        let f = fn() { g(if (true) { return 2; }) + 1 };
        f()
        """
        assert run(source) == Integer(2)

    def test_return_from_operand_at_top_level(self, run):
        assert run("1 + if (true) { return 2; }; 5") == Integer(2)


class TestErrors:
    @pytest.mark.parametrize(
        "source, message",
        [
            ("5 + true;", "type mismatch: INTEGER + BOOLEAN"),
            ("5 + true; 5;", "type mismatch: INTEGER + BOOLEAN"),
            ("-true", "unknown operator: -BOOLEAN"),
            ("true + false;", "unknown operator: BOOLEAN + BOOLEAN"),
            ("true + false + true + false;", "unknown operator: BOOLEAN + BOOLEAN"),
            ("5; true + false; 5", "unknown operator: BOOLEAN + BOOLEAN"),
            ("if (10 > 1) { true + false; }", "unknown operator: BOOLEAN + BOOLEAN"),
            (
                "if (10 > 1) { if (10 > 1) { return true + false; } return 1; }",
                "unknown operator: BOOLEAN + BOOLEAN",
            ),
            ("foobar", "identifier not found: foobar"),
            ('"Hello" - "World"', "unknown operator: STRING - STRING"),
            ('"a" == "a"', "unknown operator: STRING == STRING"),
            ("1 == true", "type mismatch: INTEGER == BOOLEAN"),
            ('{"name": "Monkey"}[fn(x) { x }];', "unusable as hash key: FUNCTION"),
            ("{[1]: 2}", "unusable as hash key: ARRAY"),
            ("5()", "not a function: INTEGER"),
            ("1[0]", "index operator not supported: INTEGER"),
            ("let f = fn(x) { x }; f(1, 2)", "wrong number of arguments. got=2, want=1"),
            ("let f = fn(x, y) { x }; f()", "wrong number of arguments. got=0, want=2"),
            ("let x = y; 5", "identifier not found: y"),
            ("[1, foo, 3]", "identifier not found: foo"),
        ],
    )
    def test_error_handling(self, run, source, message):
        result = run(source)
        assert isinstance(result, Error)
        assert result.message == message

    def test_error_stops_evaluation(self, run, capsys):
        result = run('puts("before"); missing; puts("after")')
        assert result == Error("identifier not found: missing")
        assert capsys.readouterr().out == "before\n"

    def test_error_carries_location(self):
        result = eval_source("let a = 1;\na + true", loc=SourceLocation("t.mk", 1))
        assert result.location == SourceLocation("t.mk", 2)


class TestBindings:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("let a = 5; a;", 5),
            ("let a = 5 * 5; a;", 25),
            ("let a = 5; let b = a; b;", 5),
            ("let a = 5; let b = a; let c = a + b + 5; c;", 15),
        ],
    )
    def test_let_statements(self, run, source, expected):
        assert run(source) == Integer(expected)

    def test_let_produces_no_value(self, run):
        assert run("let x = 1;") is None

    def test_empty_program(self, run):
        assert run("") is None

    def test_environment_persists_between_evaluations(self):
        env = Environment()
        eval_source("let x = 10;", env)
        assert eval_source("x * 2", env) == Integer(20)


class TestFunctions:
    def test_function_object(self, run):
        result = run("fn(x) { x + 2; };")
        assert isinstance(result, Function)
        assert [p.name for p in result.parameters] == ["x"]
        assert str(result.body) == "{ (x + 2) }"
        assert str(result) == "fn(x) { (x + 2) }"

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("let identity = fn(x) { x; }; identity(5);", 5),
            ("let identity = fn(x) { return x; }; identity(5);", 5),
            ("let double = fn(x) { x * 2; }; double(5);", 10),
            ("let add = fn(x, y) { x + y; }; add(5, 5);", 10),
            ("let add = fn(x, y) { x + y; }; add(5 + 5, add(5, 5));", 20),
            ("fn(x) { x; }(5)", 5),
        ],
    )
    def test_function_application(self, run, source, expected):
        assert run(source) == Integer(expected)

    def test_empty_body_returns_null(self, run):
        assert run("fn() { }()") is NULL

    def test_closures(self, run):
        source = """
        let newAdder = fn(x) {
            fn(y) { x + y };
        };
        let addTwo = newAdder(2);
        addTwo(2);
        """
        assert run(source) == Integer(4)

    def test_closure_sees_later_bindings(self, run):
        source = """
        let f = fn() { g() };
        let g = fn() { 7 };
        f()
        """
        assert run(source) == Integer(7)

    def test_parameters_shadow_outer_bindings(self, run):
        source = "let x = 1; let f = fn(x) { x }; f(2) + x"
        assert run(source) == Integer(3)

    def test_recursion(self, run):
        source = """
        let fib = fn(n) {
            if (n < 2) { n } else { fib(n - 1) + fib(n - 2) }
        };
        fib(15)
        """
        assert run(source) == Integer(610)

    def test_deep_recursion(self, run):
        source = """
        let f = fn(n) { if (n == 0) { 0 } else { 1 + f(n - 1) } };
        f(500)
        """
        assert run(source) == Integer(500)

    def test_deep_recursion_over_array(self, run):
        source = """
        let sum = fn(arr) { if (len(arr) == 0) { 0 } else { first(arr) + sum(rest(arr)) } };
        let build = fn(n, acc) { if (n == 0) { acc } else { build(n - 1, push(acc, 1)) } };
        sum(build(300, []))
        """
        assert run(source) == Integer(300)

    def test_unbounded_recursion_is_an_error(self, run):
        result = run("let f = fn() { f() }; f()")
        assert result == Error("maximum recursion depth exceeded")

    def test_higher_order(self, run):
        source = """
        let map = fn(arr, f) {
            let iter = fn(arr, accumulated) {
                if (len(arr) == 0) {
                    accumulated
                } else {
                    iter(rest(arr), push(accumulated, f(first(arr))));
                }
            };
            iter(arr, []);
        };
        map([1, 2, 3, 4], fn(x) { x * 2 });
        """
        assert run(source) == Array([Integer(2), Integer(4), Integer(6), Integer(8)])


class TestStrings:
    def test_string_literal(self, run):
        assert run('"Hello World!"') == String("Hello World!")

    def test_concatenation(self, run):
        assert run('"Hello" + " " + "World!"') == String("Hello World!")


class TestArrays:
    def test_array_literal(self, run):
        assert run("[1, 2 * 2, 3 + 3]") == Array([Integer(1), Integer(4), Integer(6)])

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("[1, 2, 3][0]", Integer(1)),
            ("[1, 2, 3][1]", Integer(2)),
            ("[1, 2, 3][2]", Integer(3)),
            ("let i = 0; [1][i];", Integer(1)),
            ("[1, 2, 3][1 + 1];", Integer(3)),
            ("let myArray = [1, 2, 3]; myArray[2];", Integer(3)),
            (
                "let myArray = [1, 2, 3]; myArray[0] + myArray[1] + myArray[2];",
                Integer(6),
            ),
            ("let myArray = [1, 2, 3]; let i = myArray[0]; myArray[i]", Integer(2)),
            ("[1, 2, 3][3]", NULL),
            ("[1, 2, 3][-1]", NULL),
        ],
    )
    def test_index_expressions(self, run, source, expected):
        assert run(source) == expected


class TestHashes:
    def test_hash_literal(self, run):
        source = """
        let two = "two";
        {
            "one": 10 - 9,
            two: 1 + 1,
            "thr" + "ee": 6 / 2,
            4: 4,
            true: 5,
            false: 6
        }
        """
        result = run(source)
        assert isinstance(result, Hash)
        expected = {
            String("one").hash_key(): Integer(1),
            String("two").hash_key(): Integer(2),
            String("three").hash_key(): Integer(3),
            Integer(4).hash_key(): Integer(4),
            TRUE.hash_key(): Integer(5),
            FALSE.hash_key(): Integer(6),
        }
        assert len(result.pairs) == len(expected)
        for key, value in expected.items():
            assert result.pairs[key].value == value

    @pytest.mark.parametrize(
        "source, expected",
        [
            ('{"foo": 5}["foo"]', Integer(5)),
            ('{"foo": 5}["bar"]', NULL),
            ('let key = "foo"; {"foo": 5}[key]', Integer(5)),
            ('{}["foo"]', NULL),
            ("{5: 5}[5]", Integer(5)),
            ("{true: 5}[true]", Integer(5)),
            ("{false: 5}[false]", Integer(5)),
            ('{"a": 1, "a": 2}["a"]', Integer(2)),
        ],
    )
    def test_index_expressions(self, run, source, expected):
        assert run(source) == expected

    def test_duplicate_keys_keep_one_pair(self, run):
        result = run('{"a": 1, "a": 2}')
        assert len(result.pairs) == 1


class TestDeterminism:
    def test_same_program_same_result(self):
        program = Parser(Lexer("let f = fn(x) { x * x }; [f(2), f(3)]")).parse_program()
        first = evaluate(program, Environment())
        second = evaluate(program, Environment())
        assert first == second == Array([Integer(4), Integer(9)])
