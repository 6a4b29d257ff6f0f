"""
Named bind placeholder handling for Oracle SQL.

SQL is tokenized in a single pass so that string literals, quoted
identifiers and comments are never rewritten:

    SQL → Tokenize → Match :name on whole identifiers → Rewrite
           (once)

Main entry points:
- `tokenize_sql()` - Split SQL into tokens preserving all text
- `find_bind_names()` - Bind names referenced by the SQL, in order
- `expand_placeholder()` - Replace `:name` with a generated IN list
"""
import re
from dataclasses import dataclass
from enum import Enum, auto

# =============================================================================
# Data Structures
# =============================================================================


class TokenType(Enum):
    """Token types identified during SQL parsing."""
    SQL_TEXT = auto()
    STRING_LITERAL = auto()
    QUOTED_IDENT = auto()
    COMMENT = auto()
    BIND = auto()               # :name, :"Name" or :1
    OPEN_PAREN = auto()
    CLOSE_PAREN = auto()


@dataclass(slots=True)
class Token:
    """Token from SQL parsing."""
    type: TokenType
    text: str
    start: int
    end: int


# =============================================================================
# Regex Patterns
# =============================================================================

# Master tokenization pattern. Alternative quoting q'[...]' is tried before
# plain literals so its body is never scanned for placeholders.
_TOKENIZE = re.compile(r"""
    (?P<qstring>(?<![\w$#])[nN]?[qQ]'(?:\[.*?\]|\{.*?\}|\(.*?\)|<.*?>|(?P<qdelim>[^\s\[{(<])(?:.*?)(?P=qdelim))')
    |(?P<string>[nN]?'(?:[^']|'')*')
    |(?P<ident>"(?:[^"]|"")*")
    |(?P<line_comment>--[^\n]*)
    |(?P<block_comment>/\*.*?\*/)
    |(?P<bind>(?<![\w:$#]):(?P<bname>[A-Za-z][\w$#]*|"[^"]+"|\d+))
    |(?P<open_paren>\()
    |(?P<close_paren>\))
""", re.VERBOSE | re.DOTALL)

_GROUP_TYPES = (
    ('qstring', TokenType.STRING_LITERAL),
    ('string', TokenType.STRING_LITERAL),
    ('ident', TokenType.QUOTED_IDENT),
    ('line_comment', TokenType.COMMENT),
    ('block_comment', TokenType.COMMENT),
    ('bind', TokenType.BIND),
    ('open_paren', TokenType.OPEN_PAREN),
    ('close_paren', TokenType.CLOSE_PAREN),
)


# =============================================================================
# Core Functions
# =============================================================================

def tokenize_sql(sql: str) -> list[Token]:
    """Parse SQL into tokens in a single pass.

    Parameters
        sql: SQL statement text

    Returns
        List of tokens preserving all SQL text
    """
    tokens = []
    last_end = 0

    for match in _TOKENIZE.finditer(sql):
        start, end = match.span()

        if start > last_end:
            tokens.append(Token(
                type=TokenType.SQL_TEXT,
                text=sql[last_end:start],
                start=last_end,
                end=start
            ))

        ttype = next((t for group, t in _GROUP_TYPES if match.group(group) is not None), None)
        if ttype is None:
            continue

        tokens.append(Token(type=ttype, text=match.group(0), start=start, end=end))
        last_end = end

    if last_end < len(sql):
        tokens.append(Token(
            type=TokenType.SQL_TEXT,
            text=sql[last_end:],
            start=last_end,
            end=len(sql)
        ))

    return tokens


def bind_key(name: str) -> str:
    """Canonical form of a bind name for comparison.

    Unquoted Oracle bind names are case-insensitive; quoted ones are exact.
    """
    name = name.lstrip(':')
    if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
        return name[1:-1]
    return name.upper()


def find_bind_names(sql: str) -> list[str]:
    """Return the bind names referenced by the SQL, first occurrence order."""
    seen = set()
    names = []
    for token in tokenize_sql(sql or ''):
        if token.type != TokenType.BIND:
            continue
        key = bind_key(token.text)
        if key not in seen:
            seen.add(key)
            names.append(token.text[1:])
    return names


def _neighbour(tokens: list[Token], index: int, step: int) -> Token | None:
    """Next significant token before (step=-1) or after (step=1) index."""
    i = index + step
    while 0 <= i < len(tokens):
        token = tokens[i]
        if token.type == TokenType.COMMENT:
            i += step
            continue
        if token.type == TokenType.SQL_TEXT and not token.text.strip():
            i += step
            continue
        return token
    return None


def _in_parentheses(tokens: list[Token], index: int) -> bool:
    """True when the token at index is the sole content of a parenthesis pair."""
    before = _neighbour(tokens, index, -1)
    after = _neighbour(tokens, index, 1)
    return (before is not None and before.type == TokenType.OPEN_PAREN
            and after is not None and after.type == TokenType.CLOSE_PAREN)


def expand_placeholder(sql: str, name: str, generated: list[str]) -> tuple[str, int]:
    """Replace every `:name` placeholder with a list of generated placeholders.

    A placeholder that is already the sole content of parentheses, as in
    `IN (:ids)`, is replaced by the bare list; otherwise the list is wrapped
    in parentheses.

    Parameters
        sql: SQL statement text
        name: bind name to replace, without colon
        generated: replacement bind names, without colons

    Returns
        Tuple of (rewritten_sql, number_of_replacements)
    """
    key = bind_key(name)
    listing = ','.join(f':{g}' for g in generated)
    tokens = tokenize_sql(sql)

    result_parts = []
    replaced = 0
    for i, token in enumerate(tokens):
        if token.type == TokenType.BIND and bind_key(token.text) == key:
            if _in_parentheses(tokens, i):
                result_parts.append(listing)
            else:
                result_parts.append(f'({listing})')
            replaced += 1
        else:
            result_parts.append(token.text)

    return ''.join(result_parts), replaced
