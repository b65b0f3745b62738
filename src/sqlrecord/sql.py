"""
SQL text utilities.

Statements are assembled with `?` placeholders and rebound to the target
driver's paramstyle right before execution:

    SQL (qmark) → Tokenize → Rewrite placeholders / escape percents → SQL (dialect)

Entry points:
- `rebind(sql, dialect)` - translate `?` placeholders to the dialect's style
- `compact(sql)` - normalise whitespace outside literals
"""
import re
from enum import Enum, auto
from typing import NamedTuple

__all__ = [
    'compact',
    'rebind',
    'placeholder_for',
    'tokenize_sql',
]


class TokenType(Enum):
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENTIFIER = auto()
    POSITIONAL_PH = auto()      # ? (or a stray %s)


class Token(NamedTuple):
    type: TokenType
    text: str


# every character lands in exactly one group, so tokens concatenate back
# to the input
_TOKENIZE = re.compile(r"""
    (?P<STRING_LITERAL>'(?:[^']|'')*')
    |(?P<QUOTED_IDENTIFIER>"(?:[^"]|"")*")
    |(?P<POSITIONAL_PH>\?|%s)
    |(?P<SQL_TEXT>(?:[^'"?%]|%(?!s))+|['"%])
""", re.VERBOSE)

_WHITESPACE = re.compile(r'\s+')

_PLACEHOLDERS = {
    'sqlite': '?',
    'postgresql': '%s',
}


def tokenize_sql(sql: str) -> list[Token]:
    """Split SQL into literals, quoted identifiers, placeholders and plain
    text. An unterminated quote is kept as plain text.

    >>> [t.type.name for t in tokenize_sql("a = ? AND b = 'x?'")]
    ['SQL_TEXT', 'POSITIONAL_PH', 'SQL_TEXT', 'STRING_LITERAL']
    """
    return [Token(TokenType[m.lastgroup], m.group()) for m in _TOKENIZE.finditer(sql)]


def placeholder_for(dialect: str) -> str:
    """Return the positional placeholder used by a dialect's driver.

    Raises
        ValueError: If dialect is unsupported
    """
    try:
        return _PLACEHOLDERS[dialect]
    except KeyError:
        raise ValueError(f'Unknown dialect: {dialect}') from None


def compact(sql: str) -> str:
    """Collapse whitespace runs outside literals into single spaces.

    >>> compact("SELECT a \\nFROM t \\nWHERE b = '  x'")
    "SELECT a FROM t WHERE b = '  x'"
    """
    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.SQL_TEXT:
            result.append(_WHITESPACE.sub(' ', token.text))
        else:
            result.append(token.text)
    return ''.join(result).strip()


def rebind(sql: str, dialect: str) -> str:
    """Translate a `?` placeholder template to the dialect's paramstyle.

    For `format` style drivers (psycopg) literal percent signs are doubled
    so they survive parameter interpolation.

    >>> rebind('SELECT a FROM t WHERE b = ? AND c = ?', 'postgresql')
    'SELECT a FROM t WHERE b = %s AND c = %s'
    >>> rebind("SELECT a FROM t WHERE b LIKE 'x%' AND c = ?", 'postgresql')
    "SELECT a FROM t WHERE b LIKE 'x%%' AND c = %s"
    >>> rebind('SELECT a FROM t WHERE b = ?', 'sqlite')
    'SELECT a FROM t WHERE b = ?'
    """
    placeholder = placeholder_for(dialect)
    if not sql or placeholder == '?':
        return sql

    result = []
    for token in tokenize_sql(sql):
        if token.type == TokenType.POSITIONAL_PH and token.text == '?':
            result.append(placeholder)
        else:
            result.append(token.text.replace('%', '%%'))
    return ''.join(result)
