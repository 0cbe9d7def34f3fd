"""Read Jbuilder template source into the generic template AST.

This is a front end for the Ruby subset templates are written in, not a
Ruby parser: it understands method calls (with and without parentheses),
``do``/brace blocks, conditionals, literals and hashes well enough to keep
the call structure, and treats every other expression as opaque text.

Comments are collected separately into a line-indexed map, which is what
the annotation lookup works from.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import TemplateSyntaxError
from .template_ast import (
    ArrayLiteral,
    Block,
    Call,
    Conditional,
    Expression,
    HashLiteral,
    Literal,
    Name,
    Node,
    Template,
)

# -----------------------------
# Tokenization

KEYWORDS = {
    "alias", "and", "begin", "break", "case", "class", "def", "defined?", "do",
    "else", "elsif", "end", "ensure", "false", "for", "if", "in", "module",
    "next", "nil", "not", "or", "redo", "rescue", "retry", "return", "self",
    "super", "then", "true", "undef", "unless", "until", "when", "while", "yield",
}

# Longest first so that e.g. "**=" wins over "**" and "*".
_OPERATORS = sorted(
    [
        "**=", "<=>", "===", "...", "&&=", "||=", "<<=", ">>=",
        "**", "==", "!=", ">=", "<=", "&&", "||", "<<", ">>", "=~", "!~",
        "..", "+=", "-=", "*=", "/=", "%=", "|=", "&=", "^=", "::", "=>",
        "->", "&.",
        "+", "-", "*", "/", "%", "=", "<", ">", "!", "&", "|", "^", "~",
        "?", ":", ",", ".", "(", ")", "[", "]", "{", "}", ";",
    ],
    key=len,
    reverse=True,
)

# A line ending in one of these continues on the next line.
_CONTINUATION = {
    ",", ".", "&.", "::", "=>", "&&", "||", "+", "-", "*", "/", "%", "**",
    "=", "==", "!=", "<", ">", "<=", ">=", "+=", "-=", "*=", "||=", "&&=",
    "?", ":", "<<", "and", "or", "not",
}

_BINARY = {
    "**", "*", "/", "%", "+", "-", "<<", ">>", "&", "|", "^", "<", ">", "<=",
    ">=", "<=>", "==", "===", "!=", "=~", "!~", "&&", "||", "..", "...",
}

_ASSIGNMENT = {"=", "+=", "-=", "*=", "/=", "%=", "**=", "||=", "&&=", "|=", "&=", "^=", "<<=", ">>="}

_IDENT_RE = re.compile(r"[^\W\d]\w*")
_IVAR_RE = re.compile(r"@@?[^\W\d]\w*")
_GVAR_RE = re.compile(r"\$(?:[^\W\d]\w*|\S)")
_SYMBOL_RE = re.compile(r"@{0,2}[^\W\d]\w*[?!=]?")
_NUMBER_RE = re.compile(r"[0-9][0-9_]*(\.[0-9][0-9_]*)?([eE][+-]?[0-9]+)?")
_HEREDOC_RE = re.compile(r"<<([~-]?)(['\"]?)([A-Za-z_][A-Za-z0-9_]*)\2")
_PERCENT_PAIRS = {"[": "]", "(": ")", "{": "}", "<": ">"}
_PERCENT_KINDS = ("w", "W", "i", "I", "q", "Q", "r")


@dataclass
class Token:
    kind: str  # ident, const, ivar, gvar, label, str, sym, int, float, words, symbols, op, nl, eof
    value: object
    line: int
    start: int
    end: int
    spaced: bool = False
    dynamic: bool = False


def _is_operand(tok: Token | None) -> bool:
    """True when ``tok`` ends an operand, so a following ``/`` is division."""
    if tok is None:
        return False
    if tok.kind == "ident":
        return tok.value not in KEYWORDS or tok.value in ("end", "self", "true", "false", "nil")
    if tok.kind in ("const", "ivar", "gvar", "int", "float", "str", "sym", "words", "symbols"):
        return True
    return tok.kind == "op" and tok.value in (")", "]", "}")


class Tokenizer:
    """Single pass scanner producing tokens and the comment map."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.line = 1
        self.tokens: list[Token] = []
        self.comments: dict[int, str] = {}
        # lines whose comment follows code
        self.trailing: set[int] = set()
        self._stack: list[str] = []
        self._heredocs: list[tuple[str, bool]] = []

    def error(self, message: str) -> TemplateSyntaxError:
        return TemplateSyntaxError(message, self.line)

    def tokenize(self) -> tuple[list[Token], dict[int, str]]:
        text = self.text
        n = len(text)
        spaced = True
        while self.pos < n:
            ch = text[self.pos]

            if ch in " \t\r" or (ch == "\\" and text.startswith("\\\n", self.pos)):
                if ch == "\\":
                    self.pos += 1
                    self.line += 1
                self.pos += 1
                spaced = True
                continue

            if ch == "\n":
                self._newline()
                spaced = True
                continue

            if ch == "#":
                end = text.find("\n", self.pos)
                end = n if end == -1 else end
                self.comments[self.line] = text[self.pos:end].strip()
                line_start = text.rfind("\n", 0, self.pos) + 1
                if text[line_start:self.pos].strip():
                    self.trailing.add(self.line)
                self.pos = end
                continue

            at_line_start = self.pos == 0 or text[self.pos - 1] == "\n"
            if at_line_start and text.startswith("=begin", self.pos):
                self._skip_block_comment()
                continue
            if at_line_start and text.startswith("__END__", self.pos):
                break

            start = self.pos
            self._scan_token(ch, spaced)
            if self.tokens and self.tokens[-1].start == start:
                self.tokens[-1].spaced = spaced
            spaced = False

        self._emit("nl", "\n", self.pos, self.pos)
        self._emit("eof", None, self.pos, self.pos)
        if self._stack:
            raise self.error(f"unclosed {self._stack[-1]!r}")
        return self.tokens, self.comments

    # -- helpers -----------------------------------------------------------

    def _emit(self, kind: str, value: object, start: int, end: int, dynamic: bool = False) -> Token:
        tok = Token(kind, value, self.line, start, end, dynamic=dynamic)
        self.tokens.append(tok)
        return tok

    def _last(self) -> Token | None:
        return self.tokens[-1] if self.tokens else None

    def _newline(self) -> None:
        self.pos += 1
        self.line += 1
        if self._heredocs:
            self._consume_heredoc_bodies()
        last = self._last()
        if self._stack and self._stack[-1] in ("(", "["):
            return
        if last is None or last.kind == "nl":
            return
        if last.kind == "label":
            return
        if last.kind in ("op", "ident") and last.value in _CONTINUATION:
            if not (last.kind == "op" and last.value == "|"):
                return
        if self._next_line_starts_with_dot():
            return
        self._emit("nl", "\n", self.pos - 1, self.pos)

    def _next_line_starts_with_dot(self) -> bool:
        text = self.text
        i = self.pos
        while i < len(text):
            ch = text[i]
            if ch in " \t\r\n":
                i += 1
                continue
            if ch == "#":
                end = text.find("\n", i)
                if end == -1:
                    return False
                i = end + 1
                continue
            if text.startswith("&.", i):
                return True
            return ch == "." and not text.startswith("..", i)
        return False

    def _skip_block_comment(self) -> None:
        end = self.text.find("\n=end", self.pos)
        if end == -1:
            raise self.error("unterminated =begin comment")
        self.line += self.text.count("\n", self.pos, end + 1)
        stop = self.text.find("\n", end + 1)
        self.pos = len(self.text) if stop == -1 else stop

    def _consume_heredoc_bodies(self) -> None:
        text = self.text
        while self._heredocs:
            terminator, _ = self._heredocs.pop(0)
            while True:
                if self.pos >= len(text):
                    raise self.error(f"unterminated heredoc {terminator}")
                end = text.find("\n", self.pos)
                end = len(text) if end == -1 else end
                body_line = text[self.pos:end]
                self.pos = min(end + 1, len(text))
                self.line += 1
                if body_line.strip() == terminator:
                    break

    # -- token scanners ----------------------------------------------------

    def _scan_token(self, ch: str, spaced: bool) -> None:
        text = self.text
        start = self.pos

        if "0" <= ch <= "9":
            m = _NUMBER_RE.match(text, self.pos)
            if not m:
                raise self.error(f"bad number literal at {ch!r}")
            raw = m.group(0).replace("_", "")
            self.pos = m.end()
            if m.group(1) or m.group(2):
                self._emit("float", float(raw), start, self.pos)
            else:
                self._emit("int", int(raw), start, self.pos)
            return

        if ch.isalpha() or ch == "_":
            self._scan_identifier()
            return

        if ch == "@":
            m = _IVAR_RE.match(text, self.pos)
            if not m:
                raise self.error("bad instance variable")
            self.pos = m.end()
            self._emit("ivar", m.group(0), start, self.pos)
            return

        if ch == "$":
            m = _GVAR_RE.match(text, self.pos)
            if not m:
                raise self.error("bad global variable")
            self.pos = m.end()
            self._emit("gvar", m.group(0), start, self.pos)
            return

        if ch in "\"'`":
            value, dynamic = self._scan_quoted(ch)
            self._emit("str", value, start, self.pos, dynamic=dynamic)
            return

        if ch == ":" and self._symbol_allowed(spaced):
            self._scan_symbol()
            return

        if ch == "%" and self._percent_literal_allowed(spaced):
            self._scan_percent_literal()
            return

        if ch == "/" and self._regex_allowed(spaced):
            self._scan_regex()
            return

        if ch == "?" and self._char_literal_allowed(spaced):
            self.pos += 2
            self._emit("str", text[start + 1:self.pos], start, self.pos)
            return

        if text.startswith("<<", self.pos):
            m = _HEREDOC_RE.match(text, self.pos)
            # after an operand only ``x <<~EOS`` style reads as a heredoc
            if m and (not _is_operand(self._last()) or (spaced and (m.group(1) or m.group(3).isupper()))):
                self.pos = m.end()
                self._heredocs.append((m.group(3), m.group(1) == "~"))
                self._emit("str", "", start, self.pos, dynamic=True)
                return

        for op in _OPERATORS:
            if text.startswith(op, self.pos):
                self.pos += len(op)
                self._track_nesting(op)
                self._emit("op", op, start, self.pos)
                return

        raise self.error(f"unexpected character {ch!r}")

    def _track_nesting(self, op: str) -> None:
        if op in ("(", "[", "{"):
            self._stack.append(op)
        elif op in (")", "]", "}"):
            expected = {")": "(", "]": "[", "}": "{"}[op]
            if not self._stack or self._stack[-1] != expected:
                raise self.error(f"unbalanced {op!r}")
            self._stack.pop()

    def _scan_identifier(self) -> None:
        text = self.text
        start = self.pos
        m = _IDENT_RE.match(text, self.pos)
        if not m:
            raise self.error(f"unexpected character {text[start]!r}")
        self.pos = m.end()
        word = m.group(0)
        nxt = text[self.pos:self.pos + 1]
        after = text[self.pos + 1:self.pos + 2]
        if nxt in ("?", "!") and after != "=" and after != ":":
            word += nxt
            self.pos += 1
        elif nxt in ("?", "!") and after == "=" and text[self.pos + 2:self.pos + 3] == "=":
            word += nxt
            self.pos += 1
        last = self._last()
        after_dot = last is not None and last.kind == "op" and last.value in (".", "&.")
        if (
            text[self.pos:self.pos + 1] == ":"
            and text[self.pos + 1:self.pos + 2] != ":"
            and not after_dot
        ):
            self.pos += 1
            self._emit("label", word, start, self.pos)
            return
        kind = "const" if word[0].isupper() else "ident"
        self._emit(kind, word, start, self.pos)

    def _scan_quoted(self, quote: str) -> tuple[str, bool]:
        text = self.text
        self.pos += 1
        chunks: list[str] = []
        dynamic = False
        while True:
            if self.pos >= len(text):
                raise self.error("unterminated string")
            ch = text[self.pos]
            if ch == "\\" and self.pos + 1 < len(text):
                nxt = text[self.pos + 1]
                if quote == "'" and nxt not in ("'", "\\"):
                    chunks.append(ch)
                else:
                    chunks.append({"n": "\n", "t": "\t"}.get(nxt, nxt))
                if nxt == "\n":
                    self.line += 1
                self.pos += 2
                continue
            if ch == quote:
                self.pos += 1
                return "".join(chunks), dynamic
            if ch == "#" and quote != "'" and text.startswith("#{", self.pos):
                dynamic = True
                end = self._skip_interpolation(self.pos + 2)
                chunks.append(text[self.pos:end])
                self.pos = end
                continue
            if ch == "\n":
                self.line += 1
            chunks.append(ch)
            self.pos += 1

    def _skip_interpolation(self, i: int) -> int:
        """Return the index just past the ``}`` closing an interpolation."""
        text = self.text
        depth = 1
        while i < len(text):
            ch = text[i]
            if ch in "\"'":
                j = i + 1
                while j < len(text) and text[j] != ch:
                    j += 2 if text[j] == "\\" else 1
                i = j + 1
                continue
            if ch == "\n":
                self.line += 1
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        raise self.error("unterminated interpolation")

    def _symbol_allowed(self, spaced: bool) -> bool:
        text = self.text
        nxt = text[self.pos + 1:self.pos + 2]
        if not nxt or not (nxt.isalpha() or nxt in "_\"@"):
            return False
        last = self._last()
        if last is None or spaced:
            return True
        return last.kind == "op" and last.value not in (")", "]", "}")

    def _scan_symbol(self) -> None:
        start = self.pos
        self.pos += 1
        if self.text[self.pos] == '"':
            value, dynamic = self._scan_quoted('"')
            self._emit("sym", value, start, self.pos, dynamic=dynamic)
            return
        m = _SYMBOL_RE.match(self.text, self.pos)
        if not m:
            raise self.error("bad symbol")
        self.pos = m.end()
        self._emit("sym", m.group(0), start, self.pos)

    def _percent_kind(self) -> tuple[str, str]:
        """Return ``(kind, opening delimiter)`` of a ``%`` literal; kind is "" for ``%{...}``."""
        text = self.text
        kind = text[self.pos + 1:self.pos + 2]
        if kind in _PERCENT_KINDS:
            return kind, text[self.pos + 2:self.pos + 3]
        return "", kind

    def _percent_literal_allowed(self, spaced: bool) -> bool:
        kind, delim = self._percent_kind()
        if not delim or delim.isalnum() or delim.isspace():
            return False
        last = self._last()
        if kind:
            return not _is_operand(last) or spaced
        # bare ``%(...)`` after an operand is only a literal when it is a command argument
        if delim not in _PERCENT_PAIRS and delim not in "|!/":
            return False
        return not _is_operand(last) or (spaced and last.kind == "ident")

    def _scan_percent_literal(self) -> None:
        text = self.text
        start = self.pos
        kind, opener = self._percent_kind()
        body_start = self.pos + (3 if kind else 2)
        closer = _PERCENT_PAIRS.get(opener, opener)
        end = text.find(closer, body_start)
        if end == -1:
            raise self.error("unterminated percent literal")
        body = text[body_start:end]
        self.line += body.count("\n")
        self.pos = end + 1
        if kind in ("w", "W"):
            self._emit("words", body.split(), start, self.pos)
        elif kind in ("i", "I"):
            self._emit("symbols", body.split(), start, self.pos)
        elif kind == "r":
            self._emit("str", text[start:self.pos], start, self.pos, dynamic=True)
        else:
            self._emit("str", body, start, self.pos, dynamic=kind != "q" and "#{" in body)

    def _regex_allowed(self, spaced: bool) -> bool:
        last = self._last()
        if not _is_operand(last):
            return True
        nxt = self.text[self.pos + 1:self.pos + 2]
        return spaced and last.kind == "ident" and nxt not in (" ", "=")

    def _scan_regex(self) -> None:
        text = self.text
        start = self.pos
        i = self.pos + 1
        while i < len(text) and text[i] != "/":
            if text[i] == "\n":
                raise self.error("unterminated regexp")
            i += 2 if text[i] == "\\" else 1
        if i >= len(text):
            raise self.error("unterminated regexp")
        i += 1
        while i < len(text) and text[i] in "imxounse":
            i += 1
        self.pos = i
        self._emit("str", text[start:i], start, i, dynamic=True)

    def _char_literal_allowed(self, spaced: bool) -> bool:
        text = self.text
        if _is_operand(self._last()):
            return False
        ch = text[self.pos + 1:self.pos + 2]
        after = text[self.pos + 2:self.pos + 3]
        return bool(ch) and not ch.isspace() and (not after or not (after.isalnum() or after == "_"))


# -----------------------------
# Parsing

_ARG_START_KINDS = {"ident", "const", "ivar", "gvar", "label", "str", "sym", "int", "float", "words", "symbols"}
_NON_ARG_KEYWORDS = {
    "do", "end", "if", "unless", "while", "until", "and", "or", "then", "else",
    "elsif", "rescue", "ensure", "when", "in",
}


class Reader:
    """Recursive descent over the token stream."""

    def __init__(self, text: str) -> None:
        self.text = text
        tokenizer = Tokenizer(text)
        self.tokens, self.comments = tokenizer.tokenize()
        self.trailing = tokenizer.trailing
        self.i = 0
        self._last_end = 0

    # -- token access ------------------------------------------------------

    @property
    def tok(self) -> Token:
        return self.tokens[self.i]

    def peek(self, offset: int = 1) -> Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def advance(self) -> Token:
        tok = self.tokens[self.i]
        if tok.kind != "eof":
            self.i += 1
        if tok.kind != "nl":
            self._last_end = tok.end
        return tok

    def at_op(self, *values: str) -> bool:
        return self.tok.kind == "op" and self.tok.value in values

    def at_keyword(self, *values: str) -> bool:
        return self.tok.kind == "ident" and self.tok.value in values

    def expect_op(self, value: str) -> Token:
        if not self.at_op(value):
            raise self.error(f"expected {value!r}")
        return self.advance()

    def expect_keyword(self, value: str) -> Token:
        if not self.at_keyword(value):
            raise self.error(f"expected {value!r}")
        return self.advance()

    def skip_newlines(self) -> None:
        while self.tok.kind == "nl" or self.at_op(";"):
            self.advance()

    def error(self, message: str) -> TemplateSyntaxError:
        tok = self.tok
        found = "end of input" if tok.kind == "eof" else repr(tok.value)
        return TemplateSyntaxError(f"{message}, found {found}", tok.line)

    def source_from(self, start: int) -> str:
        return self.text[start:self._last_end]

    # -- statements --------------------------------------------------------

    def parse_template(self) -> Template:
        body = self.parse_statements(())
        if self.tok.kind != "eof":
            raise self.error("unexpected token")
        return Template(body=body, comments=self.comments, trailing=self.trailing)

    def parse_statements(self, terminators: tuple[str, ...], closing_op: str | None = None) -> list[Node]:
        body: list[Node] = []
        while True:
            self.skip_newlines()
            tok = self.tok
            if tok.kind == "eof":
                if terminators or closing_op:
                    raise self.error("unexpected end of template")
                return body
            if closing_op and self.at_op(closing_op):
                return body
            if tok.kind == "ident" and tok.value in terminators:
                return body
            if tok.kind == "ident" and tok.value in ("rescue", "ensure") and "end" in terminators:
                self._skip_line()
                continue
            body.append(self.parse_statement())
            closers = (";", "}") if closing_op is None else (";", "}", closing_op)
            if not (self.tok.kind in ("nl", "eof") or self.at_op(*closers) or self.at_keyword(*terminators)):
                raise self.error("expected end of statement")

    def _skip_line(self) -> None:
        while self.tok.kind not in ("nl", "eof"):
            self.advance()

    def parse_statement(self) -> Node:
        start_tok = self.tok
        node = self.parse_expression(command=True)
        if self.at_op(","):
            node = self.parse_multiple_assignment(node, start_tok)
        while self.at_keyword("if", "unless", "while", "until", "rescue"):
            keyword = self.advance().value
            condition = self.parse_expression(command=True)
            if keyword in ("if", "unless"):
                node = Conditional(
                    keyword=keyword,
                    condition=condition,
                    branches=[[node]],
                    line=start_tok.line,
                    source=self.source_from(start_tok.start),
                )
            else:
                node = Expression(
                    parts=[node, condition],
                    line=start_tok.line,
                    source=self.source_from(start_tok.start),
                )
        return node

    def parse_multiple_assignment(self, first: Node, start_tok: Token) -> Node:
        """``a, b = 1, 2``; targets and values are kept as opaque parts."""
        targets = [first]
        while self.at_op(","):
            self.advance()
            targets.append(self.parse_unary(False, False))
        self.expect_op("=")
        self.skip_newlines()
        values = self.parse_args(closing=None)
        return Expression([*targets, *values], start_tok.line, self.source_from(start_tok.start))

    # -- expressions -------------------------------------------------------

    def parse_expression(self, command: bool = False, no_do: bool = False) -> Node:
        """Lowest precedence: ``not``, ``and``, ``or``."""
        start_tok = self.tok
        if self.at_keyword("not"):
            self.advance()
            operand = self.parse_expression(command, no_do)
            return Expression([operand], start_tok.line, self.source_from(start_tok.start))
        node = self.parse_assignment(command, no_do)
        while self.at_keyword("and", "or"):
            self.advance()
            self.skip_newlines()
            right = self.parse_assignment(command, no_do)
            node = Expression([node, right], start_tok.line, self.source_from(start_tok.start))
        return node

    def parse_assignment(self, command: bool, no_do: bool) -> Node:
        start_tok = self.tok
        node = self.parse_ternary(command, no_do)
        if self.at_op(*_ASSIGNMENT):
            self.advance()
            value = self.parse_expression(command=True, no_do=no_do)
            return Expression([node, value], start_tok.line, self.source_from(start_tok.start))
        return node

    def parse_ternary(self, command: bool, no_do: bool) -> Node:
        start_tok = self.tok
        node = self.parse_binary(command, no_do)
        if self.at_op("?"):
            self.advance()
            when_true = self.parse_ternary(False, no_do)
            self.skip_newlines()
            if self.tok.kind == "label":
                # ``cond ? a : b`` written without the space before the colon
                label = self.advance()
                when_true = Name(str(label.value), label.line, str(label.value))
            else:
                self.expect_op(":")
            when_false = self.parse_ternary(False, no_do)
            node = Expression([node, when_true, when_false], start_tok.line, self.source_from(start_tok.start))
        return node

    def parse_binary(self, command: bool, no_do: bool) -> Node:
        start_tok = self.tok
        node = self.parse_unary(command, no_do)
        while self.tok.kind == "op" and self.tok.value in _BINARY:
            op = self.advance().value
            if op in ("..", "...") and self._at_operand_end():
                # endless range ``(1..)``
                node = Expression([node], start_tok.line, self.source_from(start_tok.start))
                continue
            right = self.parse_unary(False, no_do)
            node = Expression([node, right], start_tok.line, self.source_from(start_tok.start))
        return node

    def _at_operand_end(self) -> bool:
        if self.tok.kind in ("nl", "eof"):
            return True
        return self.at_op(")", "]", "}", ",", ";", "=>") or self.at_keyword(*_NON_ARG_KEYWORDS)

    def parse_unary(self, command: bool, no_do: bool) -> Node:
        start_tok = self.tok
        if self.at_op("!", "-", "+", "~", "*", "**", "&", "::"):
            self.advance()
            operand = self.parse_unary(command, no_do)
            return Expression([operand], start_tok.line, self.source_from(start_tok.start))
        if self.at_keyword("defined?"):
            self.advance()
            operand = self.parse_unary(False, no_do)
            return Expression([operand], start_tok.line, self.source_from(start_tok.start))
        start = self.tok.start
        return self.parse_postfix(self.parse_primary(command, no_do), start, command, no_do)

    def parse_postfix(self, node: Node, start: int, command: bool, no_do: bool) -> Node:
        """Method chains, ``::`` lookups and indexing. ``start`` is the chain's first offset."""
        while True:
            if self.at_op(".", "&."):
                self.advance()
                self.skip_newlines()
                node = self.parse_method_call(node, start, command, no_do)
            elif self.at_op("::") and not self.tok.spaced:
                self.advance()
                name = self.advance()
                if name.kind == "const" and not (self.at_op("(") and not self.tok.spaced):
                    prefix = node.identifier if isinstance(node, Name) else node.source
                    node = Name(f"{prefix}::{name.value}", node.line, self.source_from(start))
                elif name.kind in ("const", "ident"):
                    node = self._attach_call(node, str(name.value), name, start, command, no_do)
                else:
                    raise self.error("expected constant or method name")
            elif self.at_op("[") and not self.tok.spaced:
                self.advance()
                index = self.parse_args(closing="]")
                node = Expression([node, *index], node.line, self.source_from(start))
            else:
                return node

    def parse_method_call(self, receiver: Node, start: int, command: bool, no_do: bool) -> Node:
        if self.at_op("("):
            # json.(object, :a, :b)
            return self._attach_call(receiver, "call", self.tok, start, command, no_do)
        name_tok = self.advance()
        if name_tok.kind not in ("ident", "const"):
            raise self.error("expected method name")
        return self._attach_call(receiver, str(name_tok.value), name_tok, start, command, no_do)

    def _attach_call(
        self, receiver: Node | None, method: str, name_tok: Token, start: int, command: bool, no_do: bool,
    ) -> Node:
        line = receiver.line if receiver is not None else name_tok.line
        args: list[Node] = []
        if self.at_op("(") and not self.tok.spaced:
            self.advance()
            args = self.parse_args(closing=")")
        elif command and self._starts_command_arg():
            args = self.parse_args(closing=None, no_do=True)
        call = Call(receiver=receiver, method=method, args=args, line=line, source=self.source_from(start))
        return self._attach_block(call, start, no_do)

    def _attach_block(self, call: Call, start: int, no_do: bool) -> Node:
        if self.at_op("{") and self._brace_opens_hash():
            # json.merge! { key: value } passes a hash, not a block
            call.args.append(self.parse_hash())
            call.source = self.source_from(start)
            return call
        if self.at_op("{"):
            self.advance()
            params = self.parse_block_params()
            body = self.parse_statements((), closing_op="}")
            self.expect_op("}")
            return Block(call=call, params=params, body=body, line=call.line, source=self.source_from(start))
        if self.at_keyword("do") and not no_do:
            self.advance()
            params = self.parse_block_params()
            body = self.parse_statements(("end",))
            self.expect_keyword("end")
            return Block(call=call, params=params, body=body, line=call.line, source=self.source_from(start))
        return call

    def _brace_opens_hash(self) -> bool:
        offset = 1
        while self.peek(offset).kind == "nl":
            offset += 1
        nxt = self.peek(offset)
        if nxt.kind == "label":
            return True
        after = self.peek(offset + 1)
        return nxt.kind in ("str", "sym") and after.kind == "op" and after.value == "=>"

    def parse_block_params(self) -> list[str]:
        while self.tok.kind == "nl":
            self.advance()
        if self.at_op("||"):
            self.advance()
            return []
        if not self.at_op("|"):
            return []
        self.advance()
        params: list[str] = []
        while not self.at_op("|"):
            tok = self.advance()
            if tok.kind == "eof":
                raise self.error("unterminated block parameters")
            if tok.kind in ("ident", "label"):
                params.append(str(tok.value))
                if tok.kind == "label" and not self.at_op(",", "|"):
                    self.parse_ternary(False, True)
            elif tok.kind == "op" and tok.value == "=":
                self.parse_ternary(False, True)
        self.advance()
        return params

    def _starts_command_arg(self) -> bool:
        tok = self.tok
        if not tok.spaced:
            return False
        if tok.kind in _ARG_START_KINDS:
            return not (tok.kind == "ident" and tok.value in _NON_ARG_KEYWORDS)
        if tok.kind != "op":
            return False
        nxt = self.peek()
        if tok.value in ("[", "(", "->", "!", "::"):
            return True
        if tok.value in ("-", "*", "&", "**", ":"):
            # ``foo -1`` / ``foo *args`` / ``foo &:sym``: operator glued to its operand
            return not nxt.spaced
        return False

    def parse_args(self, closing: str | None, no_do: bool = False) -> list[Node]:
        args: list[Node] = []
        pairs: list[tuple[Node, Node]] = []
        hash_start: Token | None = None
        inner_no_do = no_do if closing is None else False
        while True:
            if closing:
                self.skip_newlines()
                if self.at_op(closing):
                    break
            tok = self.tok
            if tok.kind == "label":
                hash_start = hash_start or tok
                self.advance()
                self.skip_newlines()
                key = Literal("sym", tok.value, tok.line, str(tok.value))
                if self.at_op(",") or (closing and self.at_op(closing)):
                    # Ruby 3.1 shorthand ``foo(key:)``
                    value: Node = Name(str(tok.value), tok.line, str(tok.value))
                else:
                    value = self.parse_arg(inner_no_do)
                pairs.append((key, value))
            elif self.at_op("**"):
                hash_start = hash_start or tok
                self.advance()
                value = self.parse_arg(inner_no_do)
                pairs.append((Literal("sym", "**", tok.line, "**"), value))
            else:
                value = self.parse_arg(inner_no_do)
                if self.at_op("=>"):
                    hash_start = hash_start or tok
                    self.advance()
                    self.skip_newlines()
                    pairs.append((value, self.parse_arg(inner_no_do)))
                else:
                    args.append(value)
            if self.at_op(","):
                self.advance()
                continue
            break
        if closing:
            self.skip_newlines()
            self.expect_op(closing)
        if pairs:
            args.append(HashLiteral(pairs, hash_start.line, self.source_from(hash_start.start)))
        return args

    def parse_arg(self, no_do: bool) -> Node:
        if self.at_keyword("not"):
            return self.parse_expression(no_do=no_do)
        return self.parse_ternary(False, no_do)

    def parse_primary(self, command: bool, no_do: bool) -> Node:
        tok = self.tok
        kind = tok.kind

        if kind == "ident":
            word = str(tok.value)
            if word in ("nil", "true", "false"):
                self.advance()
                return Literal(word, {"nil": None, "true": True, "false": False}[word], tok.line, word)
            if word == "self":
                self.advance()
                return Name("self", tok.line, "self")
            if word in ("if", "unless"):
                return self.parse_if()
            if word == "case":
                return self.parse_case()
            if word in ("while", "until"):
                return self.parse_loop()
            if word == "begin":
                return self.parse_begin()
            if word in ("return", "next", "break", "yield", "super"):
                self.advance()
                parts: list[Node] = []
                if self.at_op("(") and not self.tok.spaced:
                    self.advance()
                    parts = self.parse_args(closing=")")
                elif self._starts_command_arg():
                    parts = self.parse_args(closing=None, no_do=no_do)
                return Expression(parts, tok.line, self.source_from(tok.start))
            if word in ("def", "class", "module", "for", "alias", "undef"):
                raise self.error(f"'{word}' is not supported in templates")
            if word in KEYWORDS:
                raise self.error("unexpected keyword")
            self.advance()
            if (self.at_op("(") and not self.tok.spaced) or (command and self._starts_command_arg()):
                return self._attach_call(None, word, tok, tok.start, command, no_do)
            if self.at_op("{") or (self.at_keyword("do") and not no_do):
                return self._attach_call(None, word, tok, tok.start, command, no_do)
            return Name(word, tok.line, word)

        if kind == "const":
            self.advance()
            if self.at_op("(") and not self.tok.spaced:
                return self._attach_call(None, str(tok.value), tok, tok.start, command, no_do)
            return Name(str(tok.value), tok.line, str(tok.value))

        if kind in ("ivar", "gvar"):
            self.advance()
            return Name(str(tok.value), tok.line, str(tok.value))

        if kind in ("str", "sym"):
            self.advance()
            node = Literal(kind, tok.value, tok.line, self.source_from(tok.start), dynamic=tok.dynamic)
            while self.tok.kind == "str" and kind == "str":
                # adjacent literals concatenate
                nxt = self.advance()
                node = Literal("str", f"{node.value}{nxt.value}", tok.line, self.source_from(tok.start),
                               dynamic=node.dynamic or nxt.dynamic)
            return node

        if kind in ("int", "float"):
            self.advance()
            return Literal(kind, tok.value, tok.line, self.source_from(tok.start))

        if kind in ("words", "symbols"):
            self.advance()
            elem_kind = "str" if kind == "words" else "sym"
            elements: list[Node] = [Literal(elem_kind, w, tok.line, str(w)) for w in tok.value]
            return ArrayLiteral(elements, tok.line, self.source_from(tok.start))

        if kind == "label":
            raise self.error("unexpected label")

        if kind == "op":
            if tok.value == "(":
                self.advance()
                body = self.parse_statements((), closing_op=")")
                self.expect_op(")")
                if len(body) == 1:
                    return body[0]
                return Expression(body, tok.line, self.source_from(tok.start))
            if tok.value == "[":
                self.advance()
                elements = self.parse_args(closing="]")
                return ArrayLiteral(elements, tok.line, self.source_from(tok.start))
            if tok.value == "{":
                return self.parse_hash()
            if tok.value == "->":
                return self.parse_lambda()
            if tok.value in ("..", "..."):
                self.advance()
                operand = self.parse_unary(False, no_do)
                return Expression([operand], tok.line, self.source_from(tok.start))

        raise self.error("unexpected token")

    def parse_hash(self) -> HashLiteral:
        start = self.expect_op("{")
        pairs: list[tuple[Node, Node]] = []
        while True:
            self.skip_newlines()
            if self.at_op("}"):
                break
            tok = self.tok
            if tok.kind == "label":
                self.advance()
                self.skip_newlines()
                key: Node = Literal("sym", tok.value, tok.line, str(tok.value))
                if self.at_op(",", "}"):
                    value: Node = Name(str(tok.value), tok.line, str(tok.value))
                else:
                    value = self.parse_arg(False)
            elif self.at_op("**"):
                self.advance()
                key = Literal("sym", "**", tok.line, "**")
                value = self.parse_arg(False)
            elif tok.kind == "str" and self.peek().kind == "op" and self.peek().value == ":" and not self.peek().spaced:
                # "quoted": value
                self.advance()
                self.advance()
                key = Literal("sym", tok.value, tok.line, str(tok.value))
                value = self.parse_arg(False)
            else:
                key = self.parse_arg(False)
                self.skip_newlines()
                self.expect_op("=>")
                self.skip_newlines()
                value = self.parse_arg(False)
            pairs.append((key, value))
            self.skip_newlines()
            if self.at_op(","):
                self.advance()
                continue
            self.skip_newlines()
            break
        self.expect_op("}")
        return HashLiteral(pairs, start.line, self.source_from(start.start))

    def parse_lambda(self) -> Node:
        start = self.expect_op("->")
        params: list[str] = []
        if self.at_op("("):
            self.advance()
            while not self.at_op(")"):
                tok = self.advance()
                if tok.kind == "eof":
                    raise self.error("unterminated lambda parameters")
                if tok.kind in ("ident", "label"):
                    params.append(str(tok.value))
            self.advance()
        call = Call(receiver=None, method="lambda", args=[], line=start.line, source="->")
        node = self._attach_block(call, start.start, no_do=False)
        if isinstance(node, Block):
            node.params = params or node.params
        return node

    # -- compound statements ----------------------------------------------

    def parse_if(self) -> Conditional:
        start = self.advance()
        keyword = str(start.value)
        condition = self.parse_expression(command=True, no_do=True)
        self._skip_then()
        branches = [self.parse_statements(("elsif", "else", "end"))]
        while self.at_keyword("elsif"):
            self.advance()
            self.parse_expression(command=True, no_do=True)
            self._skip_then()
            branches.append(self.parse_statements(("elsif", "else", "end")))
        if self.at_keyword("else"):
            self.advance()
            branches.append(self.parse_statements(("end",)))
        self.expect_keyword("end")
        return Conditional(keyword, condition, branches, start.line, self.source_from(start.start))

    def parse_case(self) -> Conditional:
        start = self.advance()
        subject: Node | None = None
        if self.tok.kind != "nl":
            subject = self.parse_expression(command=True)
        self.skip_newlines()
        branches: list[list[Node]] = []
        while self.at_keyword("when", "in"):
            self.advance()
            self.parse_args(closing=None, no_do=True)
            self._skip_then()
            branches.append(self.parse_statements(("when", "in", "else", "end")))
        if self.at_keyword("else"):
            self.advance()
            branches.append(self.parse_statements(("end",)))
        self.expect_keyword("end")
        return Conditional("case", subject, branches, start.line, self.source_from(start.start))

    def parse_loop(self) -> Conditional:
        start = self.advance()
        condition = self.parse_expression(command=True, no_do=True)
        if self.at_keyword("do"):
            self.advance()
        body = self.parse_statements(("end",))
        self.expect_keyword("end")
        return Conditional(str(start.value), condition, [body], start.line, self.source_from(start.start))

    def parse_begin(self) -> Conditional:
        start = self.advance()
        branches = [self.parse_statements(("rescue", "else", "ensure", "end"))]
        while self.at_keyword("rescue", "else", "ensure"):
            keyword = self.advance().value
            if keyword == "rescue":
                self._skip_line()
            branches.append(self.parse_statements(("rescue", "else", "ensure", "end")))
        self.expect_keyword("end")
        return Conditional("begin", None, branches, start.line, self.source_from(start.start))

    def _skip_then(self) -> None:
        if self.at_keyword("then"):
            self.advance()
        self.skip_newlines()


def read_template(text: str) -> Template:
    """Parse template source into a :class:`Template`.

    Raises :class:`TemplateSyntaxError` when the source cannot be read.
    """
    return Reader(text).parse_template()
