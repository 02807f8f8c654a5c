"""Label template interpreter.

A template is the body of a double-quoted interpolated string: literal text
mixed with ``${...}`` expressions and ``$name`` shorthands. Expressions can
only reach two bindings, ``env`` (the build environment) and ``sys`` (read-only
process properties), plus a fixed table of date helpers and string methods.
Nothing in the language can touch the filesystem or spawn processes.

Example:
    >>> evaluate({"JOB_NAME": "nightly", "BUILD_NUMBER": "42"},
    ...          "${env['JOB_NAME']}-${env['BUILD_NUMBER']}")
    'nightly-42'
"""

from __future__ import annotations

import getpass
import logging
import os
import platform
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..errors import ExpressionError, ExpressionEvaluationError, ExpressionSyntaxError

logger = logging.getLogger(__name__)

_ESCAPES = {'"': '"', "'": "'", "\\": "\\", "$": "$", "n": "\n", "t": "\t", "r": "\r"}
_OPERATORS = "[]().,+}"
_JAVA_DATE_TOSTRING = "EEE MMM dd HH:mm:ss zzz yyyy"


def system_properties() -> Mapping[str, str]:
    """Snapshot of process-wide properties exposed to templates as ``sys``."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = ""
    return MappingProxyType(
        {
            "user.name": user,
            "user.home": os.path.expanduser("~"),
            "user.dir": os.getcwd(),
            "os.name": platform.system(),
            "os.arch": platform.machine(),
            "os.version": platform.release(),
            "file.separator": os.sep,
            "path.separator": os.pathsep,
            "line.separator": os.linesep,
            "python.version": platform.python_version(),
        }
    )


# --- date formatting ---


def _format_field(moment: datetime, letter: str, count: int) -> str:
    if letter == "y":
        if count == 2:
            return f"{moment.year % 100:02d}"
        return str(moment.year).zfill(count)
    if letter == "M":
        if count >= 4:
            return moment.strftime("%B")
        if count == 3:
            return moment.strftime("%b")
        return str(moment.month).zfill(count)
    if letter == "E":
        return moment.strftime("%A" if count >= 4 else "%a")
    if letter == "a":
        return moment.strftime("%p")
    if letter == "z":
        return moment.strftime("%Z")
    if letter == "Z":
        return moment.strftime("%z")

    numeric = {
        "d": moment.day,
        "D": moment.timetuple().tm_yday,
        "u": moment.isoweekday(),
        "H": moment.hour,
        "k": moment.hour or 24,
        "K": moment.hour % 12,
        "h": moment.hour % 12 or 12,
        "m": moment.minute,
        "s": moment.second,
        "S": moment.microsecond // 1000,
    }
    if letter not in numeric:
        raise ExpressionEvaluationError(f"Illegal pattern character '{letter}'")
    return str(numeric[letter]).zfill(count)


def format_date(moment: datetime, pattern: str) -> str:
    """Format a datetime using SimpleDateFormat-style pattern letters.

    Quoted text is copied literally; two single quotes produce one.

    Raises:
        ExpressionEvaluationError: For unknown pattern letters or an
            unterminated quote
    """
    out: List[str] = []
    i, n = 0, len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == "'":
            if pattern.startswith("''", i):
                out.append("'")
                i += 2
                continue
            i += 1
            while True:
                if i >= n:
                    raise ExpressionEvaluationError(f"Unterminated quote in date pattern: {pattern}")
                if pattern[i] == "'":
                    if pattern.startswith("''", i):
                        out.append("'")
                        i += 2
                        continue
                    i += 1
                    break
                out.append(pattern[i])
                i += 1
            continue
        if ch.isascii() and ch.isalpha():
            j = i
            while j < n and pattern[j] == ch:
                j += 1
            out.append(_format_field(moment, ch, j - i))
            i = j
            continue
        out.append(ch)
        i += 1
    return "".join(out)


@dataclass(frozen=True)
class DateFormat:
    """Value produced by ``new SimpleDateFormat(pattern)``."""

    pattern: str

    def format(self, moment: Any) -> str:
        if not isinstance(moment, datetime):
            raise ExpressionEvaluationError("SimpleDateFormat.format() expects a date")
        return format_date(moment, self.pattern)


def to_text(value: Any) -> str:
    """String form of a template value; absent values render as empty."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return format_date(value, _JAVA_DATE_TOSTRING)
    return str(value)


# --- evaluation ---


@dataclass
class _Scope:
    names: Mapping[str, Any]
    now: datetime


def _call_string_method(value: str, name: str, args: Sequence[Any]) -> Any:
    if name == "toUpperCase":
        return value.upper()
    if name == "toLowerCase":
        return value.lower()
    if name == "trim":
        return value.strip()
    if name == "replace":
        old, new = args
        return value.replace(to_text(old), to_text(new))
    if name == "substring":
        if len(args) == 1:
            return value[int(args[0]):]
        start, end = args
        return value[int(start):int(end)]
    raise ExpressionEvaluationError(f"No such method: String.{name}()")


class _Node:
    def evaluate(self, scope: _Scope) -> Any:  # pragma: no cover - abstract
        raise NotImplementedError


@dataclass
class _Literal(_Node):
    value: Any

    def evaluate(self, scope: _Scope) -> Any:
        return self.value


@dataclass
class _Name(_Node):
    name: str

    def evaluate(self, scope: _Scope) -> Any:
        if self.name not in scope.names:
            raise ExpressionEvaluationError(f"No such property: {self.name}")
        return scope.names[self.name]


@dataclass
class _Index(_Node):
    target: _Node
    key: _Node

    def evaluate(self, scope: _Scope) -> Any:
        target = self.target.evaluate(scope)
        key = self.key.evaluate(scope)
        if target is None:
            return None
        if isinstance(target, Mapping):
            return target.get(to_text(key))
        if isinstance(target, str) and isinstance(key, int):
            return target[key]
        raise ExpressionEvaluationError(f"Cannot index {type(target).__name__} with {key!r}")


@dataclass
class _Attribute(_Node):
    target: _Node
    name: str

    def evaluate(self, scope: _Scope) -> Any:
        target = self.target.evaluate(scope)
        if target is None:
            return None
        if isinstance(target, Mapping):
            return target.get(self.name)
        raise ExpressionEvaluationError(f"No such property: {self.name}")


@dataclass
class _MethodCall(_Node):
    target: _Node
    name: str
    args: List[_Node]

    def evaluate(self, scope: _Scope) -> Any:
        target = self.target.evaluate(scope)
        args = [arg.evaluate(scope) for arg in self.args]
        if target is None:
            raise ExpressionEvaluationError(f"Cannot invoke method {self.name}() on null object")
        if self.name == "toString" and not args:
            return to_text(target)
        if isinstance(target, datetime) and self.name == "format":
            (pattern,) = args
            return format_date(target, to_text(pattern))
        if isinstance(target, DateFormat) and self.name == "format":
            (moment,) = args
            return target.format(moment)
        if isinstance(target, str):
            return _call_string_method(target, self.name, args)
        raise ExpressionEvaluationError(f"No such method: {type(target).__name__}.{self.name}()")


def _fn_date(scope: _Scope, pattern: Any) -> str:
    return format_date(scope.now, to_text(pattern))


def _fn_now(scope: _Scope) -> datetime:
    return scope.now


_FUNCTIONS: Dict[str, Callable[..., Any]] = {
    "date": _fn_date,
    "now": _fn_now,
}

_CONSTRUCTORS: Dict[str, Callable[..., Any]] = {
    "Date": lambda scope: scope.now,
    "java.util.Date": lambda scope: scope.now,
    "SimpleDateFormat": lambda scope, pattern: DateFormat(to_text(pattern)),
    "java.text.SimpleDateFormat": lambda scope, pattern: DateFormat(to_text(pattern)),
}


@dataclass
class _Call(_Node):
    name: str
    args: List[_Node]

    def evaluate(self, scope: _Scope) -> Any:
        if self.name not in _FUNCTIONS:
            raise ExpressionEvaluationError(f"No such function: {self.name}()")
        return _FUNCTIONS[self.name](scope, *[arg.evaluate(scope) for arg in self.args])


@dataclass
class _New(_Node):
    class_name: str
    args: List[_Node]

    def evaluate(self, scope: _Scope) -> Any:
        if self.class_name not in _CONSTRUCTORS:
            raise ExpressionEvaluationError(f"Unable to resolve class {self.class_name}")
        return _CONSTRUCTORS[self.class_name](scope, *[arg.evaluate(scope) for arg in self.args])


@dataclass
class _Add(_Node):
    left: _Node
    right: _Node

    def evaluate(self, scope: _Scope) -> Any:
        left = self.left.evaluate(scope)
        right = self.right.evaluate(scope)
        if (
            isinstance(left, int)
            and isinstance(right, int)
            and not isinstance(left, bool)
            and not isinstance(right, bool)
        ):
            return left + right
        return to_text(left) + to_text(right)


@dataclass
class _Elvis(_Node):
    left: _Node
    right: _Node

    def evaluate(self, scope: _Scope) -> Any:
        value = self.left.evaluate(scope)
        return value if value else self.right.evaluate(scope)


# --- parsing ---


@dataclass(frozen=True)
class _Token:
    kind: str  # STRING, INT, NAME, OP, EOF
    value: Any
    start: int
    end: int


class _Parser:
    """Recursive-descent parser producing a list of template parts."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self._lookahead: Optional[_Token] = None

    # template level

    def parse_template(self) -> List[_Node]:
        text = self.text
        parts: List[_Node] = []
        buf: List[str] = []

        def flush() -> None:
            if buf:
                parts.append(_Literal("".join(buf)))
                buf.clear()

        while self.pos < len(text):
            ch = text[self.pos]
            if ch == "\\":
                if self.pos + 1 >= len(text) or text[self.pos + 1] not in _ESCAPES:
                    raise ExpressionSyntaxError("Invalid escape sequence", self.pos)
                buf.append(_ESCAPES[text[self.pos + 1]])
                self.pos += 2
            elif ch == '"':
                raise ExpressionSyntaxError("Unexpected unescaped '\"' in template", self.pos)
            elif ch == "$":
                flush()
                parts.append(self._parse_interpolation())
            else:
                buf.append(ch)
                self.pos += 1
        flush()
        return parts

    def _parse_interpolation(self) -> _Node:
        start = self.pos
        self.pos += 1
        if self.text.startswith("{", self.pos):
            self.pos += 1
            node = self.parse_expression()
            token = self._advance()
            if token.kind == "EOF":
                raise ExpressionSyntaxError("Unterminated '${' interpolation", start)
            if token.value != "}" or token.kind != "OP":
                raise ExpressionSyntaxError(f"Expected '}}' but found {token.value!r}", token.start)
            return node

        name = self._read_identifier()
        if not name:
            raise ExpressionSyntaxError("Illegal string body character after dollar sign", start)
        node = _Name(name)
        while self.text.startswith(".", self.pos) and self._is_identifier_start(self.pos + 1):
            self.pos += 1
            node = _Attribute(node, self._read_identifier())
        return node

    def _is_identifier_start(self, pos: int) -> bool:
        return pos < len(self.text) and (self.text[pos].isalpha() or self.text[pos] == "_")

    def _read_identifier(self) -> str:
        if not self._is_identifier_start(self.pos):
            return ""
        end = self.pos
        while end < len(self.text) and (self.text[end].isalnum() or self.text[end] == "_"):
            end += 1
        name, self.pos = self.text[self.pos:end], end
        return name

    # expression level

    def parse_expression(self) -> _Node:
        node = self._parse_concat()
        while self._peek_op("?:"):
            self._advance()
            node = _Elvis(node, self._parse_concat())
        return node

    def _parse_concat(self) -> _Node:
        node = self._parse_postfix()
        while self._peek_op("+"):
            self._advance()
            node = _Add(node, self._parse_postfix())
        return node

    def _parse_postfix(self) -> _Node:
        node = self._parse_primary()
        while True:
            if self._peek_op("["):
                self._advance()
                key = self.parse_expression()
                self._expect_op("]")
                node = _Index(node, key)
            elif self._peek_op("."):
                self._advance()
                name = self._expect_name()
                if self._peek_op("("):
                    node = _MethodCall(node, name, self._parse_args())
                else:
                    node = _Attribute(node, name)
            else:
                return node

    def _parse_primary(self) -> _Node:
        token = self._advance()
        if token.kind in ("STRING", "INT"):
            return _Literal(token.value)
        if token.kind == "OP" and token.value == "(":
            node = self.parse_expression()
            self._expect_op(")")
            return node
        if token.kind == "NAME":
            if token.value == "new":
                class_name = self._expect_name()
                while self._peek_op("."):
                    self._advance()
                    class_name = f"{class_name}.{self._expect_name()}"
                return _New(class_name, self._parse_args())
            if token.value in ("null", "true", "false"):
                return _Literal({"null": None, "true": True, "false": False}[token.value])
            if self._peek_op("("):
                return _Call(token.value, self._parse_args())
            return _Name(token.value)
        if token.kind == "EOF":
            raise ExpressionSyntaxError("Unexpected end of template", token.start)
        raise ExpressionSyntaxError(f"Unexpected {token.value!r}", token.start)

    def _parse_args(self) -> List[_Node]:
        self._expect_op("(")
        args: List[_Node] = []
        if self._peek_op(")"):
            self._advance()
            return args
        while True:
            args.append(self.parse_expression())
            if self._peek_op(","):
                self._advance()
                continue
            self._expect_op(")")
            return args

    # tokens

    def _peek(self) -> _Token:
        if self._lookahead is None:
            self._lookahead = self._scan()
        return self._lookahead

    def _advance(self) -> _Token:
        token = self._peek()
        self.pos = token.end
        self._lookahead = None
        return token

    def _peek_op(self, op: str) -> bool:
        token = self._peek()
        return token.kind == "OP" and token.value == op

    def _expect_op(self, op: str) -> None:
        token = self._advance()
        if token.kind != "OP" or token.value != op:
            found = "end of template" if token.kind == "EOF" else repr(token.value)
            raise ExpressionSyntaxError(f"Expected '{op}' but found {found}", token.start)

    def _expect_name(self) -> str:
        token = self._advance()
        if token.kind != "NAME":
            raise ExpressionSyntaxError("Expected a name", token.start)
        return token.value

    def _scan(self) -> _Token:
        text, pos = self.text, self.pos
        while pos < len(text) and text[pos].isspace():
            pos += 1
        if pos >= len(text):
            return _Token("EOF", None, pos, pos)

        ch = text[pos]
        if ch in "'\"":
            return self._scan_string(pos)
        if ch.isdigit():
            end = pos
            while end < len(text) and text[end].isdigit():
                end += 1
            return _Token("INT", int(text[pos:end]), pos, end)
        if ch.isalpha() or ch == "_":
            end = pos
            while end < len(text) and (text[end].isalnum() or text[end] == "_"):
                end += 1
            return _Token("NAME", text[pos:end], pos, end)
        if text.startswith("?:", pos):
            return _Token("OP", "?:", pos, pos + 2)
        if ch in _OPERATORS:
            return _Token("OP", ch, pos, pos + 1)
        raise ExpressionSyntaxError(f"Unexpected character {ch!r}", pos)

    def _scan_string(self, start: int) -> _Token:
        text = self.text
        quote = text[start]
        chars: List[str] = []
        pos = start + 1
        while pos < len(text):
            ch = text[pos]
            if ch == quote:
                return _Token("STRING", "".join(chars), start, pos + 1)
            if ch == "\\":
                if pos + 1 >= len(text) or text[pos + 1] not in _ESCAPES:
                    raise ExpressionSyntaxError("Invalid escape sequence", pos)
                chars.append(_ESCAPES[text[pos + 1]])
                pos += 2
                continue
            chars.append(ch)
            pos += 1
        raise ExpressionSyntaxError("Unterminated string literal", start)


class Template:
    """Compiled label template; render it once per build."""

    def __init__(self, source: str, parts: Sequence[_Node]) -> None:
        self.source = source
        self._parts = tuple(parts)

    def render(
        self,
        env: Mapping[str, str],
        now: Optional[datetime] = None,
        system: Optional[Mapping[str, str]] = None,
    ) -> str:
        """Render against an environment snapshot.

        Raises:
            ExpressionEvaluationError: If an expression fails at runtime
        """
        scope = _Scope(
            names={
                "env": MappingProxyType(env),
                "sys": system if system is not None else system_properties(),
            },
            now=now or datetime.now(),
        )
        try:
            return "".join(to_text(part.evaluate(scope)) for part in self._parts)
        except ExpressionError:
            raise
        except RecursionError as exc:
            raise ExpressionEvaluationError(
                f"Failed to evaluate '{self.source}': expression is nested too deeply", cause=exc
            )
        except (TypeError, ValueError, IndexError) as exc:
            raise ExpressionEvaluationError(f"Failed to evaluate '{self.source}': {exc}", cause=exc)

    def __repr__(self) -> str:
        return f"Template({self.source!r})"


def compile_template(expression: str) -> Template:
    """Parse a template body.

    Raises:
        ExpressionSyntaxError: If quotes, braces or brackets are unbalanced
    """
    parser = _Parser(expression)
    try:
        parts = parser.parse_template()
    except RecursionError as exc:
        raise ExpressionSyntaxError("Expression is nested too deeply", parser.pos, cause=exc)
    return Template(expression, parts)


def evaluate(
    env: Mapping[str, str],
    expression: Optional[str],
    now: Optional[datetime] = None,
) -> str:
    """Expand a label template against a build environment.

    Args:
        env: Build environment variables, bound as ``env``
        expression: Template body; None renders as the empty string
        now: Instant used by date helpers (defaults to the current time)

    Returns:
        Rendered label with surrounding whitespace removed

    Raises:
        ExpressionSyntaxError: Template is malformed
        ExpressionEvaluationError: Template failed while rendering
    """
    if not expression:
        return ""
    result = compile_template(expression).render(env, now=now)
    logger.debug("Evaluated label template %r -> %r", expression, result)
    return result.strip()
