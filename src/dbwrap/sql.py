"""
SQL template processing with a single-pass tokenizer.

Templates use `?` as the only positional placeholder. The template is
tokenized once; string literals, quoted identifiers and comments are kept
verbatim so a `?` inside them is never treated as a placeholder.

    Template → Tokenize → Substitute / Rewrite → SQL text
                (once)      (one pass)

Main entry points:
- `substitute_placeholders()` - Inline rendered literals (literal execution)
- `standardize_placeholders()` - Rewrite `?` to the driver paramstyle (bound execution)
- `render_literal()` - Render one Python value as an SQL literal
- `quote_identifier()` - Quote table/column names
"""
import datetime
import decimal
import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from dbwrap.exceptions import ArgumentError
from dbwrap.types import Param, check_int64

# =============================================================================
# Data Structures
# =============================================================================


class TokenType(Enum):
    """Token types identified during template parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENT = auto()
    COMMENT = auto()
    PLACEHOLDER = auto()
    PERCENT = auto()


@dataclass(slots=True)
class Token:
    """Token from template parsing."""
    type: TokenType
    text: str
    start: int
    end: int


# =============================================================================
# Patterns
# =============================================================================

# Standard SQL: '...' strings, "..." identifiers, no backslash escapes
_STRING_STANDARD = r"'(?:[^']|'')*'"
_IDENT_STANDARD = r'"(?:[^"]|"")*"|`(?:[^`]|``)*`'
_COMMENT_STANDARD = r'--[^\n]*|/\*.*?\*/'

# MySQL: '...' and "..." are both strings with backslash escapes, `...` is
# the identifier quote and # starts a line comment
_STRING_MYSQL = r"'(?:[^'\\]|\\.|'')*'" + '|' + r'"(?:[^"\\]|\\.|"")*"'
_IDENT_MYSQL = r'`(?:[^`]|``)*`'
_COMMENT_MYSQL = r'--[^\n]*|\#[^\n]*|/\*.*?\*/'

_TOKENIZE_TEMPLATE = r"""
    (?P<string>{string})
    |(?P<ident>{ident})
    |(?P<comment>{comment})
    |(?P<qmark>\?)
    |(?P<percent>%)
"""

_TOKENIZE = re.compile(
    _TOKENIZE_TEMPLATE.format(string=_STRING_STANDARD, ident=_IDENT_STANDARD,
                              comment=_COMMENT_STANDARD),
    re.VERBOSE | re.DOTALL)
_TOKENIZE_MYSQL = re.compile(
    _TOKENIZE_TEMPLATE.format(string=_STRING_MYSQL, ident=_IDENT_MYSQL,
                              comment=_COMMENT_MYSQL),
    re.VERBOSE | re.DOTALL)

_PARAMSTYLE = {
    'mysql': '%s',
    'postgresql': '%s',
    'sqlite': '?',
    }


# =============================================================================
# Core Functions
# =============================================================================

def tokenize_sql(sql: str, dialect: str | None = None) -> list[Token]:
    """Parse a template into tokens in a single pass.

    Parameters
        sql: SQL template
        dialect: Database dialect, selects the quoting and comment rules

    Returns
        List of tokens preserving all template text
    """
    pattern = _TOKENIZE_MYSQL if dialect == 'mysql' else _TOKENIZE
    tokens = []
    last_end = 0

    for match in pattern.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:start], last_end, start))

        if match.group('string'):
            ttype = TokenType.STRING_LITERAL
        elif match.group('ident'):
            ttype = TokenType.QUOTED_IDENT
        elif match.group('comment'):
            ttype = TokenType.COMMENT
        elif match.group('qmark'):
            ttype = TokenType.PLACEHOLDER
        else:
            ttype = TokenType.PERCENT

        tokens.append(Token(ttype, match.group(0), start, end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[last_end:], last_end, len(sql)))

    return tokens


def count_placeholders(sql: str, dialect: str | None = None) -> int:
    """Count `?` placeholders outside literals, identifiers and comments.
    """
    if not sql or '?' not in sql:
        return 0
    return sum(1 for t in tokenize_sql(sql, dialect) if t.type == TokenType.PLACEHOLDER)


def check_placeholder_count(expected: int, given: int) -> None:
    """Raise ArgumentError when the argument count differs from the placeholder count."""
    if expected != given:
        raise ArgumentError(
            f'Parameter count mismatch: SQL needs {expected} '
            f'but {given} were provided'
        )


def substitute_placeholders(sql: str, args: Sequence[Any],
                            render: Callable[[Any], str],
                            dialect: str | None = None) -> str:
    """Replace each placeholder, left to right, with `render(arg)`.

    Rendered values are emitted as output segments and never rescanned, so
    values that contain `?` are left alone.

    Parameters
        sql: SQL template
        args: One value per placeholder
        render: Callable turning a value into SQL literal text
        dialect: Database dialect

    Returns
        SQL text with no placeholders left

    Raises
        ArgumentError: If the number of args differs from the number of placeholders
    """
    tokens = tokenize_sql(sql, dialect)
    expected = sum(1 for t in tokens if t.type == TokenType.PLACEHOLDER)
    check_placeholder_count(expected, len(args))

    values = iter(args)
    result = []
    for token in tokens:
        if token.type == TokenType.PLACEHOLDER:
            result.append(render(next(values)))
        else:
            result.append(token.text)
    return ''.join(result)


def standardize_placeholders(sql: str, dialect: str = 'mysql') -> str:
    """Rewrite `?` placeholders to the driver paramstyle.

    For pyformat drivers (`%s`) every literal `%` in the template is doubled,
    including inside string literals, since the driver interpolates the whole
    statement.

    Parameters
        sql: SQL template
        dialect: Database dialect

    Returns
        SQL with driver placeholders
    """
    if not sql:
        return sql

    placeholder = _PARAMSTYLE.get(dialect)
    if placeholder is None:
        raise ValueError(f'Unknown dialect: {dialect}')
    if placeholder == '?':
        return sql

    result = []
    for token in tokenize_sql(sql, dialect):
        if token.type == TokenType.PLACEHOLDER:
            result.append(placeholder)
        else:
            result.append(token.text.replace('%', '%%'))
    return ''.join(result)


def render_literal(value: Any, escape: Callable[[str], str],
                   binary: Callable[[bytes], str]) -> str:
    """Render a Python value as an SQL literal for inline substitution.

    Only exact integers (and bools, rendered 1/0) skip escaping. None, empty
    strings and non-finite floats become `null`. Everything else is converted
    to text, escaped with the connection's routine and single-quoted. A
    `Param` is rendered from its coerced value, so `Param.integer('5')`
    inlines as `5`.

    Parameters
        value: Value to render
        escape: Connection string-escaping routine
        binary: Dialect renderer for bytes literals

    Returns
        SQL literal text

    Raises
        ArgumentError: If an integer is outside the signed 64-bit range
    """
    if isinstance(value, Param):
        value = value.value
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return '1' if value else '0'
    if type(value) is int:
        return str(check_int64(value))
    if isinstance(value, float) and (math.isnan(value) or math.isinf(value)):
        return 'null'
    if isinstance(value, bytes | bytearray | memoryview):
        return binary(bytes(value))
    if isinstance(value, datetime.date | datetime.time):
        text = value.isoformat(sep=' ') if isinstance(value, datetime.datetime) else value.isoformat()
    elif isinstance(value, decimal.Decimal):
        text = format(value, 'f')
    else:
        text = str(value)
    if text == '':
        return 'null'
    return "'" + escape(text) + "'"


def quote_identifier(identifier: str, dialect: str = 'mysql') -> str:
    """Safely quote database identifiers.

    Dotted names (`schema.table`) are quoted part by part.

    Parameters
        identifier: Table or column name
        dialect: Database dialect

    Returns
        Quoted identifier

    Raises
        ValueError: If dialect is unsupported or the identifier is empty
    """
    if not identifier:
        raise ValueError('Identifier cannot be empty')

    if dialect == 'mysql':
        quote = '`'
    elif dialect in {'postgresql', 'sqlite'}:
        quote = '"'
    else:
        raise ValueError(f'Unknown dialect: {dialect}')

    return '.'.join(quote + part.replace(quote, quote * 2) + quote
                    for part in identifier.split('.'))
