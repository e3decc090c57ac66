#!/usr/bin/env python3

from abc import ABC, abstractmethod
from argparse import ArgumentParser
from dataclasses import dataclass, field
from pathlib import Path
from string import ascii_letters, digits, printable, whitespace
from types import ModuleType
from typing import (
    Any,
    Callable,
    Iterator,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
    final,
)
import code
import enum
import os
import re
import sys

readline: Optional[ModuleType]
try:
    # REPL readline support.
    import readline
except ImportError:
    readline = None

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MASK = 2**64 - 1

FNV64_OFFSET_BASIS = 0xCBF29CE484222325
FNV64_PRIME = 0x100000001B3

RECURSION_LIMIT = 10000


def quote(item: Any) -> str:
    text = str(item)
    return f"`{text}`" if "`" not in text else f'"{text}"'


def wrap_int64(value: int) -> int:
    # Two's complement wrap-around, matching fixed width integer overflow.
    return ((value - INT64_MIN) & UINT64_MASK) + INT64_MIN


def fnv1a64(data: bytes) -> int:
    digest = FNV64_OFFSET_BASIS
    for byte in data:
        digest ^= byte
        digest = (digest * FNV64_PRIME) & UINT64_MASK
    return digest


ValueType = TypeVar("ValueType", bound="Value")


class Value(ABC):
    @staticmethod
    @abstractmethod
    def typename() -> str:
        raise NotImplementedError()

    @abstractmethod
    def __str__(self):
        raise NotImplementedError()


class Hashable(ABC):
    """
    Values usable as hash keys. Hash lookup compares the derived HashKey, never
    the value object itself.
    """

    @abstractmethod
    def hash_key(self) -> "HashKey":
        raise NotImplementedError()


@dataclass(frozen=True)
class HashKey:
    type: str
    value: int


@final
@dataclass
class Null(Value):
    @staticmethod
    def typename() -> str:
        return "NULL"

    @staticmethod
    def new() -> "Null":
        return NULL

    def __str__(self):
        return "null"


@final
@dataclass
class Boolean(Value, Hashable):
    data: bool

    @staticmethod
    def typename() -> str:
        return "BOOLEAN"

    @staticmethod
    def new(data: bool) -> "Boolean":
        return TRUE if data else FALSE

    def hash_key(self) -> HashKey:
        return HashKey(Boolean.typename(), 1 if self.data else 0)

    def __str__(self):
        return "true" if self.data else "false"


@final
@dataclass
class Integer(Value, Hashable):
    data: int

    def __post_init__(self):
        self.data = wrap_int64(self.data)

    @staticmethod
    def typename() -> str:
        return "INTEGER"

    def hash_key(self) -> HashKey:
        return HashKey(Integer.typename(), self.data & UINT64_MASK)

    def __str__(self):
        return str(self.data)


@final
@dataclass
class String(Value, Hashable):
    data: str

    @staticmethod
    def typename() -> str:
        return "STRING"

    def hash_key(self) -> HashKey:
        return HashKey(String.typename(), fnv1a64(self.bytes))

    def __str__(self):
        return self.data

    @property
    def bytes(self) -> bytes:
        return self.data.encode("utf-8")


@final
@dataclass
class Array(Value):
    elements: list[Value]

    @staticmethod
    def typename() -> str:
        return "ARRAY"

    def __str__(self):
        elements = ", ".join([str(x) for x in self.elements])
        return f"[{elements}]"


@dataclass
class HashPair:
    key: Value
    value: Value


@final
@dataclass
class Hash(Value):
    pairs: dict[HashKey, HashPair]

    @staticmethod
    def typename() -> str:
        return "HASH"

    def __str__(self):
        # Pair order follows insertion into the backing dict and is not part of
        # the rendering contract.
        elements = ", ".join([f"{p.key}: {p.value}" for p in self.pairs.values()])
        return f"{{{elements}}}"


@final
@dataclass(eq=False)
class Function(Value):
    parameters: list["AstExpressionIdentifier"]
    body: "AstBlock"
    env: "Environment"

    @staticmethod
    def typename() -> str:
        return "FUNCTION"

    def __str__(self):
        parameters = ", ".join([str(x) for x in self.parameters])
        return f"fn({parameters}) {self.body}"


class ArgumentError(Exception):
    pass


class Builtin(Value):
    @property
    @abstractmethod
    def name(self) -> str:
        """
        Name associated with the builtin.
        Builtin subclasses should add the builtin name as a class property.
        """
        raise NotImplementedError()

    @staticmethod
    def typename() -> str:
        return "BUILTIN"

    def __str__(self):
        return f"{self.name}@builtin"

    def call(self, arguments: list[Value]) -> Value:
        try:
            return self.function(arguments)
        except ArgumentError as e:
            return Error(str(e))

    def expect_argument_count(self, arguments: list[Value], count: int) -> None:
        if len(arguments) != count:
            raise ArgumentError(
                f"wrong number of arguments. got={len(arguments)}, want={count}"
            )

    def typed_argument(
        self, arguments: list[Value], index: int, ty: Type[ValueType]
    ) -> ValueType:
        argument = arguments[index]
        if not isinstance(argument, ty):
            raise ArgumentError(
                f"argument to {quote(self.name)} must be {ty.typename()}, got {argument.typename()}"
            )
        return argument

    @abstractmethod
    def function(self, arguments: list[Value]) -> Value:
        raise NotImplementedError()


@final
@dataclass
class ReturnValue(Value):
    value: Value

    @staticmethod
    def typename() -> str:
        return "RETURN_VALUE"

    def __str__(self):
        return str(self.value)


@final
@dataclass
class Error(Value):
    message: str
    location: Optional["SourceLocation"] = field(default=None, compare=False)

    @staticmethod
    def typename() -> str:
        return "ERROR"

    def __str__(self):
        return f"ERROR: {self.message}"


# Boolean and null values are never reallocated, so truthiness and equality
# checks on them may compare by identity.
NULL = Null()
TRUE = Boolean(True)
FALSE = Boolean(False)


@dataclass
class SourceLocation:
    filename: Optional[str]
    line: int

    def __str__(self):
        if self.filename is None:
            return f"line {self.line}"
        return f"{self.filename}, line {self.line}"


class TokenKind(enum.Enum):
    # Meta
    ILLEGAL = "illegal"
    EOF = "eof"
    # Identifiers and Literals
    IDENTIFIER = "identifier"
    INTEGER = "integer"
    STRING = "string"
    # Operators
    ASSIGN = "="
    ADD = "+"
    SUB = "-"
    BANG = "!"
    MUL = "*"
    DIV = "/"
    EQ = "=="
    NE = "!="
    LT = "<"
    GT = ">"
    # Delimiters
    COMMA = ","
    COLON = ":"
    SEMICOLON = ";"
    LPAREN = "("
    RPAREN = ")"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    # Keywords
    FUNCTION = "fn"
    LET = "let"
    TRUE = "true"
    FALSE = "false"
    IF = "if"
    ELSE = "else"
    RETURN = "return"

    def __str__(self):
        return self.value


@dataclass
class Token:
    KEYWORDS = {
        # fmt: off
        str(TokenKind.FUNCTION): TokenKind.FUNCTION,
        str(TokenKind.LET):      TokenKind.LET,
        str(TokenKind.TRUE):     TokenKind.TRUE,
        str(TokenKind.FALSE):    TokenKind.FALSE,
        str(TokenKind.IF):       TokenKind.IF,
        str(TokenKind.ELSE):     TokenKind.ELSE,
        str(TokenKind.RETURN):   TokenKind.RETURN,
        # fmt: on
    }

    kind: TokenKind
    literal: str
    location: Optional[SourceLocation] = None

    def __str__(self):
        if self.kind == TokenKind.EOF:
            return "end-of-file"
        if self.kind == TokenKind.ILLEGAL:

            def prettyable(c):
                return c in printable and c not in whitespace

            def prettyrepr(c):
                return c if prettyable(c) else f"{ord(c):#04x}"

            return "".join(map(prettyrepr, self.literal))
        return f"{self.literal}"

    @staticmethod
    def lookup_identifier(identifier: str) -> TokenKind:
        return Token.KEYWORDS.get(identifier, TokenKind.IDENTIFIER)


class Lexer:
    EOF_LITERAL = ""
    RE_IDENTIFIER = re.compile(r"^[a-zA-Z_]\w*", re.ASCII)
    RE_INTEGER = re.compile(r"^\d+", re.ASCII)

    # Operators and delimiters that are never the prefix of a longer token.
    SINGLE_CHARACTER_TOKENS = {
        str(kind): kind
        for kind in (
            TokenKind.ADD,
            TokenKind.SUB,
            TokenKind.MUL,
            TokenKind.DIV,
            TokenKind.LT,
            TokenKind.GT,
            TokenKind.COMMA,
            TokenKind.COLON,
            TokenKind.SEMICOLON,
            TokenKind.LPAREN,
            TokenKind.RPAREN,
            TokenKind.LBRACE,
            TokenKind.RBRACE,
            TokenKind.LBRACKET,
            TokenKind.RBRACKET,
        )
    }

    def __init__(self, source: str, location: Optional[SourceLocation] = None):
        self.source: str = source
        # What position does the source "start" being lexed from.
        # None if the source is being lexed in a location-independent manner.
        self.location: Optional[SourceLocation] = location
        self.position: int = 0

    def __iter__(self) -> Iterator[Token]:
        while True:
            token = self.next_token()
            yield token
            if token.kind == TokenKind.EOF:
                return

    @staticmethod
    def _is_letter(ch: str) -> bool:
        return ch != "" and (ch in ascii_letters or ch == "_")

    def _current_character(self) -> str:
        if self.position >= len(self.source):
            return Lexer.EOF_LITERAL
        return self.source[self.position]

    def _peek_character(self) -> str:
        if self.position + 1 >= len(self.source):
            return Lexer.EOF_LITERAL
        return self.source[self.position + 1]

    def _is_eof(self) -> bool:
        return self.position >= len(self.source)

    def _advance_character(self) -> None:
        if self._is_eof():
            return
        if self.location is not None:
            self.location.line += int(self.source[self.position] == "\n")
        self.position += 1

    def _skip_whitespace(self) -> None:
        while not self._is_eof() and self._current_character() in whitespace:
            self._advance_character()

    def _new_token(self, kind: TokenKind, literal: str) -> Token:
        location = (
            SourceLocation(self.location.filename, self.location.line)
            if self.location is not None
            else None
        )
        return Token(kind, literal, location)

    def _lex_keyword_or_identifier(self) -> Token:
        assert Lexer._is_letter(self._current_character())
        match = Lexer.RE_IDENTIFIER.match(self.source[self.position :])
        assert match is not None  # guaranteed by regexp
        text = match[0]
        self.position += len(text)
        return self._new_token(Token.lookup_identifier(text), text)

    def _lex_integer(self) -> Token:
        assert self._current_character() in digits
        match = Lexer.RE_INTEGER.match(self.source[self.position :])
        assert match is not None  # guaranteed by regexp
        text = match[0]
        self.position += len(text)
        return self._new_token(TokenKind.INTEGER, text)

    def _lex_string(self) -> Token:
        token = self._new_token(TokenKind.STRING, "")
        start = self.position
        self._advance_character()
        while not self._is_eof() and self._current_character() != '"':
            self._advance_character()
        if self._is_eof():
            # Unterminated string literal.
            token.kind = TokenKind.ILLEGAL
            token.literal = self.source[start:]
            return token
        self._advance_character()
        token.literal = self.source[start + 1 : self.position - 1]
        return token

    def next_token(self) -> Token:
        if self.location is not None:
            file = self.location.filename
            line = self.location.line
            self.location = SourceLocation(file, line)
        self._skip_whitespace()

        if self._is_eof():
            return self._new_token(TokenKind.EOF, Lexer.EOF_LITERAL)

        # Literals, Identifiers, and Keywords
        if self._current_character() == '"':
            return self._lex_string()
        if Lexer._is_letter(self._current_character()):
            return self._lex_keyword_or_identifier()
        if self._current_character() in digits:
            return self._lex_integer()

        # Operators and Delimiters
        if self._current_character() == "=" and self._peek_character() == "=":
            self._advance_character()
            self._advance_character()
            return self._new_token(TokenKind.EQ, str(TokenKind.EQ))
        if self._current_character() == "!" and self._peek_character() == "=":
            self._advance_character()
            self._advance_character()
            return self._new_token(TokenKind.NE, str(TokenKind.NE))
        if self._current_character() == "=":
            self._advance_character()
            return self._new_token(TokenKind.ASSIGN, str(TokenKind.ASSIGN))
        if self._current_character() == "!":
            self._advance_character()
            return self._new_token(TokenKind.BANG, str(TokenKind.BANG))
        kind = Lexer.SINGLE_CHARACTER_TOKENS.get(self._current_character())
        if kind is not None:
            self._advance_character()
            return self._new_token(kind, str(kind))

        token = self._new_token(TokenKind.ILLEGAL, self._current_character())
        self._advance_character()
        return token


@dataclass
class ParseError(Exception):
    location: Optional[SourceLocation]
    why: str

    def __str__(self):
        if self.location is None:
            return f"{self.why}"
        return f"[{self.location}] {self.why}"


class Environment:
    def __init__(self, outer: Optional["Environment"] = None):
        self.outer: Optional["Environment"] = outer
        self.store: dict[str, Value] = dict()

    def let(self, name: str, value: Value) -> Value:
        self.store[name] = value
        return value

    def get(self, name: str) -> Optional[Value]:
        value = self.store.get(name, None)
        if value is None and self.outer is not None:
            return self.outer.get(name)
        return value


def render_statements(statements: list["AstStatement"]) -> str:
    rendered = [str(statement) for statement in statements]
    # Expression statements render without a trailing semicolon, so one is
    # restored between statements to keep the output parseable.
    for i in range(len(rendered) - 1):
        if not rendered[i].endswith(";"):
            rendered[i] += ";"
    return " ".join(rendered)


class AstNode(ABC):
    token: Token

    def token_literal(self) -> str:
        return self.token.literal

    @abstractmethod
    def __str__(self):
        raise NotImplementedError()


class AstExpression(AstNode):
    token: Token


class AstStatement(AstNode):
    token: Token


@final
@dataclass
class AstProgram(AstNode):
    token: Token
    statements: list[AstStatement]

    def __str__(self):
        return render_statements(self.statements)


@final
@dataclass
class AstExpressionIdentifier(AstExpression):
    token: Token
    name: str

    def __str__(self):
        return self.name


@final
@dataclass
class AstExpressionInteger(AstExpression):
    token: Token
    value: int

    def __str__(self):
        return str(self.value)


@final
@dataclass
class AstExpressionBoolean(AstExpression):
    token: Token
    value: bool

    def __str__(self):
        return "true" if self.value else "false"


@final
@dataclass
class AstExpressionString(AstExpression):
    token: Token
    value: str

    def __str__(self):
        return f'"{self.value}"'


@final
@dataclass
class AstExpressionPrefix(AstExpression):
    token: Token
    operator: str
    rhs: AstExpression

    def __str__(self):
        return f"({self.operator}{self.rhs})"


@final
@dataclass
class AstExpressionInfix(AstExpression):
    token: Token
    lhs: AstExpression
    operator: str
    rhs: AstExpression

    def __str__(self):
        return f"({self.lhs} {self.operator} {self.rhs})"


@final
@dataclass
class AstBlock(AstStatement):
    token: Token
    statements: list[AstStatement]

    def __str__(self):
        if len(self.statements) == 0:
            return "{ }"
        return f"{{ {render_statements(self.statements)} }}"


@final
@dataclass
class AstExpressionIf(AstExpression):
    token: Token
    condition: AstExpression
    consequence: AstBlock
    alternative: Optional[AstBlock]

    def __str__(self):
        if self.alternative is None:
            return f"if ({self.condition}) {self.consequence}"
        return f"if ({self.condition}) {self.consequence} else {self.alternative}"


@final
@dataclass
class AstExpressionFunction(AstExpression):
    token: Token
    parameters: list[AstExpressionIdentifier]
    body: AstBlock

    def __str__(self):
        parameters = ", ".join([str(x) for x in self.parameters])
        return f"{self.token_literal()}({parameters}) {self.body}"


@final
@dataclass
class AstExpressionCall(AstExpression):
    token: Token
    function: AstExpression
    arguments: list[AstExpression]

    def __str__(self):
        arguments = ", ".join([str(x) for x in self.arguments])
        return f"{self.function}({arguments})"


@final
@dataclass
class AstExpressionArray(AstExpression):
    token: Token
    elements: list[AstExpression]

    def __str__(self):
        elements = ", ".join([str(x) for x in self.elements])
        return f"[{elements}]"


@final
@dataclass
class AstExpressionHash(AstExpression):
    token: Token
    pairs: list[Tuple[AstExpression, AstExpression]]

    def __str__(self):
        pairs = ", ".join([f"{k}: {v}" for k, v in self.pairs])
        return f"{{{pairs}}}"


@final
@dataclass
class AstExpressionIndex(AstExpression):
    token: Token
    store: AstExpression
    index: AstExpression

    def __str__(self):
        return f"({self.store}[{self.index}])"


@final
@dataclass
class AstStatementLet(AstStatement):
    token: Token
    identifier: AstExpressionIdentifier
    expression: AstExpression

    def __str__(self):
        return f"{self.token_literal()} {self.identifier} = {self.expression};"


@final
@dataclass
class AstStatementReturn(AstStatement):
    token: Token
    expression: Optional[AstExpression]

    def __str__(self):
        if self.expression is None:
            return f"{self.token_literal()};"
        return f"{self.token_literal()} {self.expression};"


@final
@dataclass
class AstStatementExpression(AstStatement):
    token: Token
    expression: AstExpression

    def __str__(self):
        return str(self.expression)


class Precedence(enum.IntEnum):
    # fmt: off
    LOWEST      = enum.auto()
    EQUALS      = enum.auto()  # == !=
    LESSGREATER = enum.auto()  # < >
    SUM         = enum.auto()  # + -
    PRODUCT     = enum.auto()  # * /
    PREFIX      = enum.auto()  # -x !x
    CALL        = enum.auto()  # foo(bar)
    INDEX       = enum.auto()  # foo[bar]
    # fmt: on


class Parser:
    ParseNud = Callable[["Parser"], AstExpression]
    ParseLed = Callable[["Parser", AstExpression], AstExpression]

    PRECEDENCES: dict[TokenKind, Precedence] = {
        # fmt: off
        TokenKind.EQ:       Precedence.EQUALS,
        TokenKind.NE:       Precedence.EQUALS,
        TokenKind.LT:       Precedence.LESSGREATER,
        TokenKind.GT:       Precedence.LESSGREATER,
        TokenKind.ADD:      Precedence.SUM,
        TokenKind.SUB:      Precedence.SUM,
        TokenKind.MUL:      Precedence.PRODUCT,
        TokenKind.DIV:      Precedence.PRODUCT,
        TokenKind.LPAREN:   Precedence.CALL,
        TokenKind.LBRACKET: Precedence.INDEX,
        # fmt: on
    }

    def __init__(self, lexer: Lexer):
        self.lexer: Lexer = lexer
        self.errors: list[str] = list()
        self.current_token: Token = Token(TokenKind.ILLEGAL, "DEFAULT CURRENT TOKEN")
        self.peek_token: Token = Token(TokenKind.ILLEGAL, "DEFAULT PEEK TOKEN")

        # Read two tokens so that both the current and peek tokens are set.
        self._advance_token()
        self._advance_token()

        self.parse_nud_functions: dict[TokenKind, Parser.ParseNud] = dict()
        self.parse_led_functions: dict[TokenKind, Parser.ParseLed] = dict()

        self._register_nud(TokenKind.IDENTIFIER, Parser.parse_expression_identifier)
        self._register_nud(TokenKind.INTEGER, Parser.parse_expression_integer)
        self._register_nud(TokenKind.STRING, Parser.parse_expression_string)
        self._register_nud(TokenKind.TRUE, Parser.parse_expression_boolean)
        self._register_nud(TokenKind.FALSE, Parser.parse_expression_boolean)
        self._register_nud(TokenKind.BANG, Parser.parse_expression_prefix)
        self._register_nud(TokenKind.SUB, Parser.parse_expression_prefix)
        self._register_nud(TokenKind.LPAREN, Parser.parse_expression_grouped)
        self._register_nud(TokenKind.IF, Parser.parse_expression_if)
        self._register_nud(TokenKind.FUNCTION, Parser.parse_expression_function)
        self._register_nud(TokenKind.LBRACKET, Parser.parse_expression_array)
        self._register_nud(TokenKind.LBRACE, Parser.parse_expression_hash)

        self._register_led(TokenKind.ADD, Parser.parse_expression_infix)
        self._register_led(TokenKind.SUB, Parser.parse_expression_infix)
        self._register_led(TokenKind.MUL, Parser.parse_expression_infix)
        self._register_led(TokenKind.DIV, Parser.parse_expression_infix)
        self._register_led(TokenKind.EQ, Parser.parse_expression_infix)
        self._register_led(TokenKind.NE, Parser.parse_expression_infix)
        self._register_led(TokenKind.LT, Parser.parse_expression_infix)
        self._register_led(TokenKind.GT, Parser.parse_expression_infix)
        self._register_led(TokenKind.LPAREN, Parser.parse_expression_call)
        self._register_led(TokenKind.LBRACKET, Parser.parse_expression_index)

    def _register_nud(self, kind: TokenKind, parse: "Parser.ParseNud") -> None:
        self.parse_nud_functions[kind] = parse

    def _register_led(self, kind: TokenKind, parse: "Parser.ParseLed") -> None:
        self.parse_led_functions[kind] = parse

    def _advance_token(self) -> Token:
        current_token = self.current_token
        self.current_token = self.peek_token
        self.peek_token = self.lexer.next_token()
        return current_token

    def _check_current(self, kind: TokenKind) -> bool:
        return self.current_token.kind == kind

    def _check_peek(self, kind: TokenKind) -> bool:
        return self.peek_token.kind == kind

    def _expect_peek(self, kind: TokenKind) -> Token:
        peek = self.peek_token
        if peek.kind != kind:
            raise ParseError(
                peek.location, f"expected {quote(kind)}, found {quote(peek)}"
            )
        self._advance_token()
        return peek

    def _peek_precedence(self) -> Precedence:
        return Parser.PRECEDENCES.get(self.peek_token.kind, Precedence.LOWEST)

    def _current_precedence(self) -> Precedence:
        return Parser.PRECEDENCES.get(self.current_token.kind, Precedence.LOWEST)

    def _synchronize(self) -> None:
        # Skip the remainder of a statement that failed to parse.
        while not (
            self._check_current(TokenKind.SEMICOLON)
            or self._check_current(TokenKind.EOF)
        ):
            self._advance_token()

    def parse_program(self) -> AstProgram:
        token = self.current_token
        statements: list[AstStatement] = list()
        while not self._check_current(TokenKind.EOF):
            try:
                statements.append(self.parse_statement())
            except ParseError as e:
                self.errors.append(str(e))
                self._synchronize()
            self._advance_token()
        return AstProgram(token, statements)

    def parse_statement(self) -> AstStatement:
        if self._check_current(TokenKind.LET):
            return self.parse_statement_let()
        if self._check_current(TokenKind.RETURN):
            return self.parse_statement_return()
        return self.parse_statement_expression()

    def parse_statement_let(self) -> AstStatementLet:
        token = self.current_token
        self._expect_peek(TokenKind.IDENTIFIER)
        identifier = self.parse_expression_identifier()
        self._expect_peek(TokenKind.ASSIGN)
        self._advance_token()
        expression = self.parse_expression()
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementLet(token, identifier, expression)

    def parse_statement_return(self) -> AstStatementReturn:
        token = self.current_token
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
            return AstStatementReturn(token, None)
        if self._check_peek(TokenKind.RBRACE) or self._check_peek(TokenKind.EOF):
            return AstStatementReturn(token, None)
        self._advance_token()
        expression = self.parse_expression()
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementReturn(token, expression)

    def parse_statement_expression(self) -> AstStatementExpression:
        token = self.current_token
        expression = self.parse_expression()
        if self._check_peek(TokenKind.SEMICOLON):
            self._advance_token()
        return AstStatementExpression(token, expression)

    def parse_block(self) -> AstBlock:
        token = self.current_token
        assert token.kind == TokenKind.LBRACE
        statements: list[AstStatement] = list()
        self._advance_token()
        while not self._check_current(TokenKind.RBRACE):
            if self._check_current(TokenKind.EOF):
                raise ParseError(
                    self.current_token.location,
                    f"expected {quote(TokenKind.RBRACE)}, found {quote(self.current_token)}",
                )
            statements.append(self.parse_statement())
            self._advance_token()
        return AstBlock(token, statements)

    def parse_expression(
        self, precedence: Precedence = Precedence.LOWEST
    ) -> AstExpression:
        parse_nud = self.parse_nud_functions.get(self.current_token.kind)
        if parse_nud is None:
            raise ParseError(
                self.current_token.location,
                f"no prefix parse function for {quote(self.current_token)} found",
            )
        expression = parse_nud(self)
        while (
            not self._check_peek(TokenKind.SEMICOLON)
            and precedence < self._peek_precedence()
        ):
            parse_led = self.parse_led_functions.get(self.peek_token.kind, None)
            if parse_led is None:
                return expression
            self._advance_token()
            expression = parse_led(self, expression)
        return expression

    def parse_expression_identifier(self) -> AstExpressionIdentifier:
        token = self.current_token
        return AstExpressionIdentifier(token, token.literal)

    def parse_expression_integer(self) -> AstExpressionInteger:
        token = self.current_token
        value = int(token.literal)
        if value > INT64_MAX:
            raise ParseError(
                token.location, f"could not parse {quote(token.literal)} as integer"
            )
        return AstExpressionInteger(token, value)

    def parse_expression_string(self) -> AstExpressionString:
        token = self.current_token
        return AstExpressionString(token, token.literal)

    def parse_expression_boolean(self) -> AstExpressionBoolean:
        token = self.current_token
        return AstExpressionBoolean(token, token.kind == TokenKind.TRUE)

    def parse_expression_prefix(self) -> AstExpressionPrefix:
        token = self._advance_token()
        rhs = self.parse_expression(Precedence.PREFIX)
        return AstExpressionPrefix(token, token.literal, rhs)

    def parse_expression_grouped(self) -> AstExpression:
        self._advance_token()
        expression = self.parse_expression()
        self._expect_peek(TokenKind.RPAREN)
        return expression

    def parse_expression_if(self) -> AstExpressionIf:
        token = self.current_token
        self._expect_peek(TokenKind.LPAREN)
        self._advance_token()
        condition = self.parse_expression()
        self._expect_peek(TokenKind.RPAREN)
        self._expect_peek(TokenKind.LBRACE)
        consequence = self.parse_block()
        alternative: Optional[AstBlock] = None
        if self._check_peek(TokenKind.ELSE):
            self._advance_token()
            self._expect_peek(TokenKind.LBRACE)
            alternative = self.parse_block()
        return AstExpressionIf(token, condition, consequence, alternative)

    def parse_expression_function(self) -> AstExpressionFunction:
        token = self.current_token
        self._expect_peek(TokenKind.LPAREN)
        parameters: list[AstExpressionIdentifier] = list()
        if self._check_peek(TokenKind.RPAREN):
            self._advance_token()
        else:
            parameters.append(self._parse_function_parameter(parameters))
            while self._check_peek(TokenKind.COMMA):
                self._advance_token()
                parameters.append(self._parse_function_parameter(parameters))
            self._expect_peek(TokenKind.RPAREN)
        self._expect_peek(TokenKind.LBRACE)
        body = self.parse_block()
        return AstExpressionFunction(token, parameters, body)

    def _parse_function_parameter(
        self, parameters: list[AstExpressionIdentifier]
    ) -> AstExpressionIdentifier:
        self._expect_peek(TokenKind.IDENTIFIER)
        parameter = self.parse_expression_identifier()
        if any(x.name == parameter.name for x in parameters):
            raise ParseError(
                parameter.token.location,
                f"duplicate function parameter {quote(parameter.name)}",
            )
        return parameter

    def parse_expression_array(self) -> AstExpressionArray:
        token = self.current_token
        elements = self._parse_expression_list(TokenKind.RBRACKET)
        return AstExpressionArray(token, elements)

    def parse_expression_hash(self) -> AstExpressionHash:
        token = self.current_token
        pairs: list[Tuple[AstExpression, AstExpression]] = list()
        while not self._check_peek(TokenKind.RBRACE):
            self._advance_token()
            k = self.parse_expression()
            self._expect_peek(TokenKind.COLON)
            self._advance_token()
            v = self.parse_expression()
            pairs.append((k, v))
            if not self._check_peek(TokenKind.RBRACE):
                self._expect_peek(TokenKind.COMMA)
        self._expect_peek(TokenKind.RBRACE)
        return AstExpressionHash(token, pairs)

    def parse_expression_infix(self, lhs: AstExpression) -> AstExpressionInfix:
        token = self.current_token
        precedence = self._current_precedence()
        self._advance_token()
        rhs = self.parse_expression(precedence)
        return AstExpressionInfix(token, lhs, token.literal, rhs)

    def parse_expression_call(self, lhs: AstExpression) -> AstExpressionCall:
        token = self.current_token
        arguments = self._parse_expression_list(TokenKind.RPAREN)
        return AstExpressionCall(token, lhs, arguments)

    def parse_expression_index(self, lhs: AstExpression) -> AstExpressionIndex:
        token = self._advance_token()
        index = self.parse_expression()
        self._expect_peek(TokenKind.RBRACKET)
        return AstExpressionIndex(token, lhs, index)

    def _parse_expression_list(self, end: TokenKind) -> list[AstExpression]:
        elements: list[AstExpression] = list()
        if self._check_peek(end):
            self._advance_token()
            return elements
        self._advance_token()
        elements.append(self.parse_expression())
        while self._check_peek(TokenKind.COMMA):
            self._advance_token()
            self._advance_token()
            elements.append(self.parse_expression())
        self._expect_peek(end)
        return elements


def is_truthy(value: Value) -> bool:
    return not (value is FALSE or value is NULL)


def evaluate(node: AstNode, env: Environment) -> Optional[Value]:
    """
    Evaluate a program, statement, or expression within the provided
    environment. Statements that produce no value (let statements, empty
    programs and blocks) evaluate to None.
    """
    match node:
        case AstProgram():
            return eval_program(node, env)
        case AstBlock():
            return eval_block(node, env)
        case AstStatementExpression():
            return evaluate_expression(node.expression, env)
        case AstStatementLet():
            result = evaluate_expression(node.expression, env)
            if isinstance(result, (Error, ReturnValue)):
                return result
            env.let(node.identifier.name, result)
            return None
        case AstStatementReturn():
            if node.expression is None:
                return ReturnValue(Null.new())
            result = evaluate_expression(node.expression, env)
            if isinstance(result, (Error, ReturnValue)):
                return result
            return ReturnValue(result)
        case AstExpression():
            return evaluate_expression(node, env)
    raise AssertionError(f"unhandled node type {type(node).__name__}")


def evaluate_expression(node: AstExpression, env: Environment) -> Value:
    match node:
        case AstExpressionInteger():
            return Integer(node.value)
        case AstExpressionBoolean():
            return Boolean.new(node.value)
        case AstExpressionString():
            return String(node.value)
        case AstExpressionIdentifier():
            return eval_identifier(node, env)
        case AstExpressionPrefix():
            rhs = evaluate_expression(node.rhs, env)
            if isinstance(rhs, (Error, ReturnValue)):
                return rhs
            return eval_prefix(node.token.location, node.operator, rhs)
        case AstExpressionInfix():
            lhs = evaluate_expression(node.lhs, env)
            if isinstance(lhs, (Error, ReturnValue)):
                return lhs
            rhs = evaluate_expression(node.rhs, env)
            if isinstance(rhs, (Error, ReturnValue)):
                return rhs
            return eval_infix(node.token.location, node.operator, lhs, rhs)
        case AstExpressionIf():
            return eval_if(node, env)
        case AstExpressionFunction():
            return Function(node.parameters, node.body, env)
        case AstExpressionCall():
            function = evaluate_expression(node.function, env)
            if isinstance(function, (Error, ReturnValue)):
                return function
            arguments = eval_expressions(node.arguments, env)
            if isinstance(arguments, (Error, ReturnValue)):
                return arguments
            return call(node.token.location, function, arguments)
        case AstExpressionArray():
            elements = eval_expressions(node.elements, env)
            if isinstance(elements, (Error, ReturnValue)):
                return elements
            return Array(elements)
        case AstExpressionHash():
            return eval_hash(node, env)
        case AstExpressionIndex():
            store = evaluate_expression(node.store, env)
            if isinstance(store, (Error, ReturnValue)):
                return store
            index = evaluate_expression(node.index, env)
            if isinstance(index, (Error, ReturnValue)):
                return index
            return eval_index(node.token.location, store, index)
    raise AssertionError(f"unhandled expression type {type(node).__name__}")


def eval_program(program: AstProgram, env: Environment) -> Optional[Value]:
    result: Optional[Value] = None
    for statement in program.statements:
        result = evaluate(statement, env)
        if isinstance(result, ReturnValue):
            return result.value
        if isinstance(result, Error):
            return result
    return result


def eval_block(block: AstBlock, env: Environment) -> Optional[Value]:
    result: Optional[Value] = None
    for statement in block.statements:
        result = evaluate(statement, env)
        # The return value stays wrapped so that it unwinds every enclosing
        # block up to the function call or program.
        if isinstance(result, (ReturnValue, Error)):
            return result
    return result


def eval_identifier(node: AstExpressionIdentifier, env: Environment) -> Value:
    value = env.get(node.name)
    if value is not None:
        return value
    builtin = BUILTINS.get(node.name)
    if builtin is not None:
        return builtin
    return Error(f"identifier not found: {node.name}", node.token.location)


def eval_prefix(
    location: Optional[SourceLocation], operator: str, rhs: Value
) -> Value:
    if operator == str(TokenKind.BANG):
        return Boolean.new(not is_truthy(rhs))
    if operator == str(TokenKind.SUB):
        if not isinstance(rhs, Integer):
            return Error(f"unknown operator: -{rhs.typename()}", location)
        return Integer(-rhs.data)
    return Error(f"unknown operator: {operator}{rhs.typename()}", location)


def eval_infix(
    location: Optional[SourceLocation], operator: str, lhs: Value, rhs: Value
) -> Value:
    if isinstance(lhs, Integer) and isinstance(rhs, Integer):
        return eval_integer_infix(location, operator, lhs, rhs)
    if isinstance(lhs, String) and isinstance(rhs, String):
        return eval_string_infix(location, operator, lhs, rhs)
    if lhs.typename() != rhs.typename():
        return Error(
            f"type mismatch: {lhs.typename()} {operator} {rhs.typename()}", location
        )
    # Booleans and null are singletons, so identity is value equality.
    if operator == str(TokenKind.EQ):
        return Boolean.new(lhs is rhs)
    if operator == str(TokenKind.NE):
        return Boolean.new(lhs is not rhs)
    return Error(
        f"unknown operator: {lhs.typename()} {operator} {rhs.typename()}", location
    )


def eval_integer_infix(
    location: Optional[SourceLocation], operator: str, lhs: Integer, rhs: Integer
) -> Value:
    match operator:
        case "+":
            return Integer(lhs.data + rhs.data)
        case "-":
            return Integer(lhs.data - rhs.data)
        case "*":
            return Integer(lhs.data * rhs.data)
        case "/":
            if rhs.data == 0:
                return Error("division by zero", location)
            # Integer division truncates toward zero.
            quotient = abs(lhs.data) // abs(rhs.data)
            if (lhs.data < 0) != (rhs.data < 0):
                quotient = -quotient
            return Integer(quotient)
        case "<":
            return Boolean.new(lhs.data < rhs.data)
        case ">":
            return Boolean.new(lhs.data > rhs.data)
        case "==":
            return Boolean.new(lhs.data == rhs.data)
        case "!=":
            return Boolean.new(lhs.data != rhs.data)
    return Error(
        f"unknown operator: {lhs.typename()} {operator} {rhs.typename()}", location
    )


def eval_string_infix(
    location: Optional[SourceLocation], operator: str, lhs: String, rhs: String
) -> Value:
    if operator != str(TokenKind.ADD):
        return Error(
            f"unknown operator: {lhs.typename()} {operator} {rhs.typename()}",
            location,
        )
    return String(lhs.data + rhs.data)


def eval_if(node: AstExpressionIf, env: Environment) -> Value:
    condition = evaluate_expression(node.condition, env)
    if isinstance(condition, (Error, ReturnValue)):
        return condition
    if is_truthy(condition):
        result = eval_block(node.consequence, env)
    elif node.alternative is not None:
        result = eval_block(node.alternative, env)
    else:
        return Null.new()
    return result if result is not None else Null.new()


def eval_expressions(
    nodes: list[AstExpression], env: Environment
) -> Union[list[Value], Error, ReturnValue]:
    values: list[Value] = list()
    for node in nodes:
        result = evaluate_expression(node, env)
        if isinstance(result, (Error, ReturnValue)):
            return result
        values.append(result)
    return values


def eval_hash(node: AstExpressionHash, env: Environment) -> Value:
    pairs: dict[HashKey, HashPair] = dict()
    for k, v in node.pairs:
        k_result = evaluate_expression(k, env)
        if isinstance(k_result, (Error, ReturnValue)):
            return k_result
        if not isinstance(k_result, Hashable):
            return Error(
                f"unusable as hash key: {k_result.typename()}", k.token.location
            )
        v_result = evaluate_expression(v, env)
        if isinstance(v_result, (Error, ReturnValue)):
            return v_result
        pairs[k_result.hash_key()] = HashPair(k_result, v_result)
    return Hash(pairs)


def eval_index(
    location: Optional[SourceLocation], store: Value, index: Value
) -> Value:
    if isinstance(store, Array) and isinstance(index, Integer):
        if 0 <= index.data < len(store.elements):
            return store.elements[index.data]
        return Null.new()
    if isinstance(store, Hash):
        if not isinstance(index, Hashable):
            return Error(f"unusable as hash key: {index.typename()}", location)
        pair = store.pairs.get(index.hash_key())
        if pair is None:
            return Null.new()
        return pair.value
    return Error(f"index operator not supported: {store.typename()}", location)


def call(
    location: Optional[SourceLocation],
    function: Value,
    arguments: list[Value],
) -> Value:
    if isinstance(function, Builtin):
        produced = function.call(arguments)
        if isinstance(produced, Error) and produced.location is None:
            produced.location = location
        return produced
    if not isinstance(function, Function):
        return Error(f"not a function: {function.typename()}", location)
    if len(arguments) != len(function.parameters):
        return Error(
            f"wrong number of arguments. got={len(arguments)}, want={len(function.parameters)}",
            location,
        )
    env = Environment(function.env)
    for parameter, argument in zip(function.parameters, arguments):
        env.let(parameter.name, argument)
    result = eval_block(function.body, env)
    if isinstance(result, ReturnValue):
        return result.value
    if result is None:
        return Null.new()
    return result


# @builtin("push", [Array, Value])
# def builtin_push(array: Array, value: Value) -> Value: ...
#
# Passing no argument types produces a variadic builtin.
def builtin(nameof: str, args: Optional[list[Type[Value]]] = None):
    def decorator(func: Callable[..., Value]) -> Type[Builtin]:
        class GeneratedBuiltin(Builtin):
            name = nameof

            def function(self, arguments: list[Value]) -> Value:
                if args is None:
                    return func(*arguments)
                self.expect_argument_count(arguments, len(args))
                processed_args = [
                    self.typed_argument(arguments, i, arg_type)
                    for i, arg_type in enumerate(args)
                ]
                return func(*processed_args)

        GeneratedBuiltin.__name__ = f"Builtin_{func.__name__}"
        return GeneratedBuiltin

    return decorator


@builtin("len", [Value])
def builtin_len(value: Value) -> Value:
    if isinstance(value, String):
        return Integer(len(value.bytes))
    if isinstance(value, Array):
        return Integer(len(value.elements))
    return Error(f"argument to {quote('len')} not supported, got {value.typename()}")


@builtin("first", [Array])
def builtin_first(array: Array) -> Value:
    if len(array.elements) == 0:
        return Null.new()
    return array.elements[0]


@builtin("last", [Array])
def builtin_last(array: Array) -> Value:
    if len(array.elements) == 0:
        return Null.new()
    return array.elements[-1]


@builtin("rest", [Array])
def builtin_rest(array: Array) -> Value:
    if len(array.elements) == 0:
        return Null.new()
    return Array(array.elements[1:])


@builtin("push", [Array, Value])
def builtin_push(array: Array, value: Value) -> Value:
    return Array(array.elements + [value])


@builtin("puts")
def builtin_puts(*values: Value) -> Value:
    for value in values:
        print(str(value))
    return Null.new()


BUILTINS: dict[str, Builtin] = {
    instance.name: instance
    for instance in (
        builtin_len(),
        builtin_first(),
        builtin_last(),
        builtin_rest(),
        builtin_push(),
        builtin_puts(),
    )
}


def raise_recursion_limit() -> None:
    # A single Monkey function call spans several Python frames.
    if sys.getrecursionlimit() < RECURSION_LIMIT:
        sys.setrecursionlimit(RECURSION_LIMIT)


def eval_source(
    source: str,
    env: Optional[Environment] = None,
    loc: Optional[SourceLocation] = None,
) -> Optional[Value]:
    lexer = Lexer(source, loc)
    parser = Parser(lexer)
    program = parser.parse_program()
    if len(parser.errors) != 0:
        raise ParseError(None, "\n".join(parser.errors))
    raise_recursion_limit()
    try:
        return evaluate(program, env if env is not None else Environment())
    except RecursionError:
        return Error("maximum recursion depth exceeded")


def eval_file(
    path: Union[str, os.PathLike],
    env: Optional[Environment] = None,
) -> Optional[Value]:
    with open(path, "r", encoding="utf-8") as f:
        source = f.read()
    return eval_source(source, env, SourceLocation(str(path), 1))


class Repl(code.InteractiveConsole):
    PROMPT = ">> "
    CONTINUATION_PROMPT = ".. "

    def __init__(self, env: Optional[Environment] = None):
        super().__init__()
        self.env = env if env is not None else Environment()
        raise_recursion_limit()

    def runsource(self, source, filename="<input>", symbol="single"):
        parser = Parser(Lexer(source))
        program = parser.parse_program()
        if len(parser.errors) != 0:
            if not source.endswith("\n"):
                # Assume the user has not finished entering their program, and
                # wait for an additional newline before producing an error.
                return True
            for message in parser.errors:
                print(f"\t{message}")
            return False
        try:
            result = evaluate(program, self.env)
        except RecursionError:
            print("error: maximum recursion depth exceeded")
            return False
        if result is not None:
            print(result)
        return False


def main() -> None:
    description = "The Monkey Programming Language"
    parser = ArgumentParser(description=description)
    parser.add_argument("file", type=str, nargs="?", default=None)
    args = parser.parse_args()

    if args.file is not None:
        try:
            result = eval_file(args.file)
        except ParseError as e:
            for message in str(e).splitlines():
                print(f"error: {message}", file=sys.stderr)
            sys.exit(1)
        if isinstance(result, Error):
            if result.location is not None:
                print(f"[{result.location}] error: {result.message}", file=sys.stderr)
            else:
                print(f"error: {result.message}", file=sys.stderr)
            sys.exit(1)
    else:
        HOME = os.environ.get("MONKEY_HOME", Path.home())
        HISTFILE = Path(HOME) / ".monkey-history"
        HISTFILE_SIZE = 4096
        if readline and os.path.exists(HISTFILE):
            readline.read_history_file(HISTFILE)
        sys.ps1 = Repl.PROMPT
        sys.ps2 = Repl.CONTINUATION_PROMPT
        repl = Repl()
        repl.interact(banner="", exitmsg="")
        if readline:
            readline.set_history_length(HISTFILE_SIZE)
            readline.write_history_file(HISTFILE)


if __name__ == "__main__":
    main()
