"""
Shared fixtures for the monkey interpreter tests.
"""

import pytest

from monkey import AstProgram, Environment, Lexer, Parser, eval_source


@pytest.fixture
def parse():
    """Parse source text, failing the test on any syntax error."""

    def parse(source: str) -> AstProgram:
        parser = Parser(Lexer(source))
        program = parser.parse_program()
        assert parser.errors == [], f"unexpected parser errors: {parser.errors}"
        return program

    return parse


@pytest.fixture
def run():
    """Evaluate source text in a fresh global environment."""

    def run(source: str):
        return eval_source(source, Environment())

    return run
