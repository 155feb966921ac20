"""
Annotation scanner for npe-annotated C++ sources.

The scanner never parses the host language. It tokenizes the file (so that
markers inside comments and string literals are ignored) and runs a small
state machine over the tokens that recognises the fixed marker grammar:

    npe_function(name)
    npe_arg(name, type, type, ...)
    npe_arg(name, npe_matches(other))
    npe_default_arg(name, host_type, default_expression)
    npe_doc("docstring")
    npe_begin_code()
        ... verbatim body ...
    npe_end_code()

Everything else is host code and is preserved verbatim.
"""

from __future__ import annotations

import ast
import keyword
import logging
import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Optional

from ..errors import DeclarationSyntaxError
from .spec_types import (
    ArgumentSpec,
    ConstraintKind,
    FunctionSpec,
    SourceLocation,
    TypeConstraint,
)

logger = logging.getLogger("npegen.scanner")


# =============================================================================
# Tokenizer
# =============================================================================

_TOKEN_RE = re.compile(
    r"""
    (?P<comment>//[^\n]*|/\*(?:.|\n)*?(?:\*/|\Z))
  | (?P<raw_string>(?:u8|u|U|L)?R"(?P<delim>[^()\\\s"]{0,16})\((?:.|\n)*?\)(?P=delim)")
  | (?P<string>(?:u8|u|U|L)?"(?:\\.|[^"\\\n])*")
  | (?P<char>(?:u8|u|U|L)?'(?:\\.|[^'\\\n])*')
  | (?P<number>\.?\d(?:[eEpP][+-]|[\w.'])*)
  | (?P<ident>[A-Za-z_]\w*)
  | (?P<punct>::|->|[^\s\w])
  | (?P<space>\s+)
    """,
    re.VERBOSE,
)


class TokenKind(Enum):
    IDENT = auto()
    NUMBER = auto()
    STRING = auto()
    RAW_STRING = auto()
    CHAR = auto()
    PUNCT = auto()
    COMMENT = auto()


_GROUP_KINDS = {
    "comment": TokenKind.COMMENT,
    "raw_string": TokenKind.RAW_STRING,
    "string": TokenKind.STRING,
    "char": TokenKind.CHAR,
    "number": TokenKind.NUMBER,
    "ident": TokenKind.IDENT,
    "punct": TokenKind.PUNCT,
}


@dataclass(frozen=True)
class Token:
    """A lexical token with its span in the scanned text."""
    kind: TokenKind
    text: str
    start: int
    end: int
    line: int
    column: int

    def is_punct(self, text: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.text == text

    @property
    def is_string(self) -> bool:
        return self.kind in (TokenKind.STRING, TokenKind.RAW_STRING)


def tokenize(text: str, keep_comments: bool = False, first_line: int = 1) -> list[Token]:
    """
    Split C++-like text into tokens.

    Whitespace is dropped; comments are dropped unless ``keep_comments``.
    Unrecognised bytes become single-character punctuation tokens, so this
    never fails on arbitrary host code.
    """
    line_starts = [0] + [m.end() for m in re.finditer(r"\n", text)]
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        group = match.lastgroup
        if group == "delim":
            group = "raw_string"
        if group == "space":
            continue
        kind = _GROUP_KINDS[group]
        if kind is TokenKind.COMMENT and not keep_comments:
            continue
        start = match.start()
        idx = bisect_right(line_starts, start) - 1
        tokens.append(Token(
            kind=kind,
            text=match.group(),
            start=start,
            end=match.end(),
            line=idx + first_line,
            column=start - line_starts[idx] + 1,
        ))
    return tokens


# =============================================================================
# Marker Grammar
# =============================================================================

MARKER_FUNCTION = "npe_function"
MARKER_ARG = "npe_arg"
MARKER_DEFAULT_ARG = "npe_default_arg"
MARKER_DOC = "npe_doc"
MARKER_BEGIN = "npe_begin_code"
MARKER_END = "npe_end_code"

DECLARATION_MARKERS = {
    MARKER_FUNCTION,
    MARKER_ARG,
    MARKER_DEFAULT_ARG,
    MARKER_DOC,
    MARKER_BEGIN,
}
ALL_MARKERS = DECLARATION_MARKERS | {MARKER_END}

CONSTRAINT_FUNCTIONS = {
    "npe_matches": ConstraintKind.MATCHES,
    "matches": ConstraintKind.MATCHES,
    "npe_dense_like": ConstraintKind.DENSE_LIKE,
    "dense_like": ConstraintKind.DENSE_LIKE,
    "npe_sparse_like": ConstraintKind.SPARSE_LIKE,
    "sparse_like": ConstraintKind.SPARSE_LIKE,
}

_OPEN = {"(": ")", "[": "]", "{": "}"}
_CLOSE = {v: k for k, v in _OPEN.items()}

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0", "\\": "\\", '"': '"', "'": "'"}


class _State(Enum):
    PREAMBLE = auto()
    DECLARATIONS = auto()
    BODY = auto()
    EPILOGUE = auto()


@dataclass
class _Call:
    """A parsed marker invocation."""
    marker: Token
    items: list[list[Token]]
    close: Token


def is_valid_binding_name(name: str) -> bool:
    """Check that a name can be exposed to the host interpreter."""
    return name.isidentifier() and name.isascii() and not keyword.iskeyword(name)


def decode_string_literal(tokens: list[Token]) -> str:
    """Decode one or more adjacent C++ string literal tokens."""
    parts = []
    for tok in tokens:
        text = tok.text
        if tok.kind is TokenKind.RAW_STRING:
            head, _, rest = text.partition('R"')
            delim = rest[: rest.index("(")]
            parts.append(rest[len(delim) + 1 : len(rest) - len(delim) - 2])
        else:
            body = text[text.index('"') + 1 : -1]
            parts.append(re.sub(
                r"\\(.)",
                lambda m: _ESCAPES.get(m.group(1), m.group(1)),
                body,
            ))
    return "".join(parts)


class AnnotationScanner:
    """
    Scanner for npe declaration markers.

    Extracts, in file order:
    - the function declaration (exactly one per file)
    - ordered argument declarations (typed, constrained, or defaulted)
    - the optional docstring
    - the verbatim body between the begin/end markers
    """

    def parse(self, source_path: Path) -> FunctionSpec:
        """
        Scan a single annotated source file.

        Args:
            source_path: Path to the annotated file

        Returns:
            FunctionSpec for the file's declaration
        """
        source_path = Path(source_path)
        text = source_path.read_text()
        return self.parse_text(text, path=source_path)

    def parse_text(self, text: str, path: Optional[Path] = None) -> FunctionSpec:
        """
        Scan annotated source text.

        Raises:
            DeclarationSyntaxError: On any malformed or missing marker
        """
        scan = _Scan(text, path)
        spec = scan.run()
        logger.debug(
            "Scanned %s: %d argument(s), body of %d line(s)",
            spec.name,
            len(spec.arguments),
            spec.body.count("\n") + 1 if spec.body else 0,
        )
        return spec


class _Scan:
    """State of one scan over one source text."""

    def __init__(self, text: str, path: Optional[Path]):
        self.text = text
        self.path = path
        self.tokens = tokenize(text)
        self.pos = 0
        self.state = _State.PREAMBLE

        self.name: Optional[str] = None
        self.function_loc: Optional[SourceLocation] = None
        self.arguments: list[ArgumentSpec] = []
        self.doc: Optional[str] = None
        self.preamble_parts: list[str] = []
        self.body: Optional[str] = None
        self.body_start = 0
        self.epilogue = ""
        self.move_lines: list[int] = []
        self.seen_default = False
        self.gap_start = 0

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def loc(self, tok: Token) -> SourceLocation:
        return SourceLocation(self.path, tok.line, tok.column)

    def error(self, message: str, tok: Optional[Token], construct: Optional[str] = None):
        if tok is None:
            line = self.text.count("\n") + 1
            location = SourceLocation(self.path, line, 1)
        else:
            location = self.loc(tok)
        return DeclarationSyntaxError(message, location=location, construct=construct)

    def span(self, tokens: list[Token]) -> str:
        return " ".join(self.text[tokens[0].start : tokens[-1].end].split())

    def peek(self, offset: int = 0) -> Optional[Token]:
        idx = self.pos + offset
        if idx < len(self.tokens):
            return self.tokens[idx]
        return None

    def read_call(self) -> _Call:
        """
        Read ``marker( item, item, ... )`` starting at the current token.

        Items are split on top-level commas. Angle brackets opened directly
        after an identifier are treated as template brackets so that
        ``std::map<int, int>`` stays one item.
        """
        marker = self.tokens[self.pos]
        opener = self.peek(1)
        if opener is None or not opener.is_punct("("):
            raise self.error(f"expected '(' after {marker.text}", marker, marker.text)

        stack: list[str] = []
        angle = 0
        items: list[list[Token]] = []
        current: list[Token] = []
        idx = self.pos + 2
        prev = opener
        while idx < len(self.tokens):
            tok = self.tokens[idx]
            if tok.kind is TokenKind.PUNCT:
                if tok.text in _OPEN:
                    stack.append(tok.text)
                elif tok.text in _CLOSE:
                    if not stack and tok.text == ")":
                        if current:
                            items.append(current)
                        elif items:
                            raise self.error(f"empty argument in {marker.text}", tok, marker.text)
                        self.pos = idx + 1
                        return _Call(marker, items, tok)
                    if not stack or stack[-1] != _CLOSE[tok.text]:
                        raise self.error(
                            f"unbalanced '{tok.text}' in {marker.text}", tok, marker.text
                        )
                    stack.pop()
                elif tok.text == "<" and prev.kind is TokenKind.IDENT:
                    angle += 1
                elif tok.text == ">" and angle > 0:
                    angle -= 1
                elif tok.text == "," and not stack and angle == 0:
                    if not current:
                        raise self.error(f"empty argument in {marker.text}", tok, marker.text)
                    items.append(current)
                    current = []
                    prev = tok
                    idx += 1
                    continue
            current.append(tok)
            prev = tok
            idx += 1

        raise self.error(f"unbalanced parentheses in {marker.text}", marker, marker.text)

    def read_name(self, call: _Call, item: list[Token], what: str) -> str:
        if len(item) != 1 or item[0].kind is not TokenKind.IDENT:
            raise self.error(
                f"{call.marker.text}: {what} must be a single identifier, "
                f"got '{self.span(item)}'",
                item[0],
                call.marker.text,
            )
        name = item[0].text
        if not is_valid_binding_name(name):
            raise self.error(
                f"{call.marker.text}: '{name}' is not a valid identifier",
                item[0],
                call.marker.text,
            )
        return name

    def flush_gap(self, until: int) -> None:
        """Keep host code found between declarations as part of the preamble."""
        gap = self.text[self.gap_start:until]
        if tokenize(gap):
            self.preamble_parts.append(gap.strip("\n") + "\n")

    # -------------------------------------------------------------------------
    # Main Loop
    # -------------------------------------------------------------------------

    def run(self) -> FunctionSpec:
        while self.pos < len(self.tokens):
            tok = self.tokens[self.pos]
            if self.state is _State.BODY:
                self.scan_body_token(tok)
                continue
            if tok.kind is TokenKind.IDENT and tok.text in ALL_MARKERS:
                self.dispatch_marker(tok)
                continue
            self.pos += 1

        return self.finish()

    def dispatch_marker(self, tok: Token) -> None:
        marker = tok.text

        if self.state is _State.EPILOGUE:
            if marker == MARKER_FUNCTION:
                raise self.error(
                    "only one npe_function may be declared per file", tok, marker
                )
            raise self.error(f"{marker} after npe_end_code()", tok, marker)

        if self.state is _State.PREAMBLE:
            if marker != MARKER_FUNCTION:
                raise self.error(f"{marker} before npe_function", tok, marker)
            self.preamble_parts.append(self.text[: tok.start])
            self.on_function(self.read_call())
            self.gap_start = self.tokens[self.pos - 1].end
            self.state = _State.DECLARATIONS
            return

        # DECLARATIONS
        self.flush_gap(tok.start)
        call = self.read_call()
        if marker == MARKER_FUNCTION:
            raise self.error("only one npe_function may be declared per file", tok, marker)
        elif marker == MARKER_ARG:
            self.on_arg(call)
        elif marker == MARKER_DEFAULT_ARG:
            self.on_default_arg(call)
        elif marker == MARKER_DOC:
            self.on_doc(call)
        elif marker == MARKER_BEGIN:
            self.on_begin(call)
            return
        elif marker == MARKER_END:
            raise self.error("npe_end_code() without npe_begin_code()", tok, marker)
        self.gap_start = call.close.end

    def scan_body_token(self, tok: Token) -> None:
        if tok.kind is TokenKind.IDENT:
            if tok.text == MARKER_END:
                call = self.read_call()
                if call.items:
                    raise self.error("npe_end_code() takes no arguments", tok, MARKER_END)
                self.body = self.text[self.body_start : tok.start]
                self.epilogue = self.text[call.close.end :]
                self.state = _State.EPILOGUE
                return
            if tok.text in DECLARATION_MARKERS:
                raise self.error(f"{tok.text} inside the function body", tok, tok.text)
            if self.is_move_marker():
                self.move_lines.append(tok.line)
        self.pos += 1

    def is_move_marker(self) -> bool:
        tok = self.peek()
        if tok.text == "npe_move":
            nxt = self.peek(1)
            return nxt is not None and nxt.is_punct("(")
        if tok.text == "npe":
            sep, name, paren = self.peek(1), self.peek(2), self.peek(3)
            return (
                sep is not None and sep.is_punct("::")
                and name is not None and name.text == "move"
                and paren is not None and paren.is_punct("(")
            )
        return False

    # -------------------------------------------------------------------------
    # Marker Handlers
    # -------------------------------------------------------------------------

    def on_function(self, call: _Call) -> None:
        if len(call.items) != 1:
            raise self.error(
                "npe_function takes exactly one argument (the function name)",
                call.marker,
                MARKER_FUNCTION,
            )
        self.name = self.read_name(call, call.items[0], "function name")
        self.function_loc = self.loc(call.marker)
        logger.debug("npe_function(%s) at line %d", self.name, call.marker.line)

    def on_arg(self, call: _Call) -> None:
        if self.seen_default:
            raise self.error(
                "npe_arg must precede every npe_default_arg", call.marker, MARKER_ARG
            )
        if len(call.items) < 2:
            raise self.error(
                "npe_arg needs a name and at least one type", call.marker, MARKER_ARG
            )
        name = self.read_name(call, call.items[0], "argument name")
        type_items = call.items[1:]

        constraint = None
        tokens: list[str] = []
        for item in type_items:
            head = item[0]
            if head.kind is TokenKind.IDENT and head.text in CONSTRAINT_FUNCTIONS:
                if len(type_items) != 1:
                    raise self.error(
                        f"npe_arg({name}): {head.text}() must be the only type",
                        head,
                        MARKER_ARG,
                    )
                constraint = self.read_constraint(item, name)
            else:
                tokens.append(self.span(item))

        self.add_argument(ArgumentSpec(
            name=name,
            position=len(self.arguments),
            type_tokens=tuple(tokens),
            constraint=constraint,
            location=self.loc(call.marker),
        ), call.items[0][0])

    def read_constraint(self, item: list[Token], arg_name: str) -> TypeConstraint:
        head = item[0]
        if (
            len(item) != 4
            or not item[1].is_punct("(")
            or item[2].kind is not TokenKind.IDENT
            or not item[3].is_punct(")")
        ):
            raise self.error(
                f"npe_arg({arg_name}): expected {head.text}(<argument>), "
                f"got '{self.span(item)}'",
                head,
                MARKER_ARG,
            )
        return TypeConstraint(kind=CONSTRAINT_FUNCTIONS[head.text], reference=item[2].text)

    def on_default_arg(self, call: _Call) -> None:
        if len(call.items) != 3:
            raise self.error(
                "npe_default_arg takes a name, a type and a default value",
                call.marker,
                MARKER_DEFAULT_ARG,
            )
        name = self.read_name(call, call.items[0], "argument name")
        self.seen_default = True
        self.add_argument(ArgumentSpec(
            name=name,
            position=len(self.arguments),
            type_tokens=(self.span(call.items[1]),),
            default=self.span(call.items[2]),
            location=self.loc(call.marker),
        ), call.items[0][0])

    def add_argument(self, arg: ArgumentSpec, name_tok: Token) -> None:
        for existing in self.arguments:
            if existing.name == arg.name:
                raise self.error(
                    f"duplicate argument '{arg.name}' (first declared at line "
                    f"{existing.location.line})",
                    name_tok,
                    MARKER_ARG,
                )
        logger.debug("argument %s: %s", arg.name, arg.declaration)
        self.arguments.append(arg)

    def on_doc(self, call: _Call) -> None:
        if self.doc is not None:
            raise self.error("npe_doc declared more than once", call.marker, MARKER_DOC)
        if len(call.items) != 1 or not all(t.is_string for t in call.items[0]):
            raise self.error(
                "npe_doc takes a single string literal", call.marker, MARKER_DOC
            )
        self.doc = decode_string_literal(call.items[0])

    def on_begin(self, call: _Call) -> None:
        if call.items:
            raise self.error("npe_begin_code() takes no arguments", call.marker, MARKER_BEGIN)
        self.body_start = call.close.end
        self.state = _State.BODY

    def finish(self) -> FunctionSpec:
        if self.state is _State.PREAMBLE:
            raise self.error("no npe_function declaration found", None, MARKER_FUNCTION)
        if self.state is _State.DECLARATIONS:
            raise DeclarationSyntaxError(
                f"npe_function({self.name}) has no npe_begin_code()",
                location=self.function_loc,
                construct=MARKER_BEGIN,
            )
        if self.state is _State.BODY:
            logger.warning(
                "%s: npe_begin_code() without npe_end_code(); body runs to end of file",
                self.path or self.name,
            )
            self.body = self.text[self.body_start :]

        return FunctionSpec(
            name=self.name,
            arguments=tuple(self.arguments),
            body=self.body,
            doc=self.doc,
            preamble="".join(self.preamble_parts),
            epilogue=self.epilogue,
            path=self.path,
            location=self.function_loc,
            move_lines=tuple(self.move_lines),
        )


def literal_python_default(expression: str, fallback: Optional[object] = None) -> Optional[object]:
    """
    Interpret a C++ default expression as a Python literal, if it is one.

    Returns ``fallback`` for expressions that only make sense in the host
    language; ``nullptr`` and ``std::nullopt`` are literals for None.
    """
    expr = expression.strip()
    mapping = {"true": True, "false": False, "nullptr": None, "std::nullopt": None}
    if expr in mapping:
        return mapping[expr]
    if not expr.lower().startswith("0x"):
        expr = re.sub(r"(?<=\d)[fFuUlL]+$", "", expr)
    try:
        return ast.literal_eval(expr)
    except (ValueError, SyntaxError):
        return fallback
