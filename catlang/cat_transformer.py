"""
Transforms the raw token tree produced by the Catlang grammar into a flat
list of instructions.

The grammar only knows about literals, single characters and bracket
groups. Everything that depends on what came before is decided here: which
characters name variables, where an implicit combinator body ends and
where a pre-named block is spliced in.
"""

from typing import Any, List, Optional, Set, Tuple

from catlang.cat_datatypes import (
    Instruction, Op,
    START_BLOCK, CLOSE_BLOCK, EXECUTE_SCOPED,
    integer, string, quoted, bind, read,
    UnexpectedCharacter, UnexpectedEnd, UnterminatedBlock,
)

OPERATORS = {
    '+': Instruction(Op.ADD),
    '*': Instruction(Op.MULTIPLY),
    'R': Instruction(Op.READ_LINE),
    'W': Instruction(Op.WRITE_LINE),
    'P': Instruction(Op.WRITE_LINE),
    'w': Instruction(Op.WRITE),
    '!': Instruction(Op.EXECUTE),
    'S': Instruction(Op.SPLIT),
    'J': Instruction(Op.JOIN),
    'I': Instruction(Op.TO_INTEGER),
    'r': Instruction(Op.RANGE),
    ':': Instruction(Op.DUPLICATE),
    ';': Instruction(Op.DUPLICATE_SECOND),
    '_': Instruction(Op.DROP),
    'x': Instruction(Op.ROTATE, 2),
    'X': Instruction(Op.ROTATE, 3),
    'p': Instruction(Op.PUSH_SIDE),
    'o': Instruction(Op.POP_SIDE),
    '~': Instruction(Op.CONSUME_SIDE),
}

COMBINATORS = {
    'M': Op.MAP,
    'F': Op.FOR_EACH,
    '#': Op.REPEAT,
}

MATCHING = {'[': ']', '(': ')'}
# Characters that can never name a variable.
SYNTAX = set('"\'`[](){}$<>')

# Grammar nodes that only wrap other nodes.
WRAPPERS = {'program', 'element', 'token'}

# Reader modes, one per kind of sequence.
PLAIN = 'plain'        # the program, or the inside of a bracket group
BRACE = 'brace'        # named block '{...}c', ends at '}'
IMPLICIT = 'implicit'  # combinator body, ends at '$' or the end of the group
PRENAMED = 'prenamed'  # 'c{...', ends at '}', '$' or the end of the group


def lexical_tokens(node: Any) -> List[dict]:
    """Flattens a grammar node into its token list, unwrapping pass-through nodes."""
    out: List[dict] = []
    if node is None:
        return out
    if isinstance(node, list):
        for n in node:
            out.extend(lexical_tokens(n))
        return out
    if isinstance(node, dict):
        if 'ast' in node and 'tag' not in node:
            return lexical_tokens(node['ast'])
        if node.get('tag') in WRAPPERS:
            return lexical_tokens(node.get('children', []))
        out.append(node)
    return out


def _text(node: dict) -> str:
    return node.get('text') or ""


def _first_char(node: dict) -> str:
    if node.get('tag') == 'group':
        return _group_parts(node)[0]
    return _text(node)[:1]


def _group_parts(node: dict) -> Tuple[str, List[dict], Optional[str]]:
    """Returns (opener, inner tokens, closer or None) of a bracket group."""
    children = lexical_tokens(node.get('children', []))
    opener = _text(children[0]) if children else _text(node)[:1]
    closer = None
    if len(children) > 1 and children[-1].get('tag') == 'closer':
        closer = _text(children[-1])
        children = children[:-1]
    return opener, children[1:], closer


class _Tokens:
    """A cursor over the tokens of one bracket level.

    `closer` is the character that ended this level in the source, None at
    the top of the program.
    """

    def __init__(self, nodes: List[dict], closer: Optional[str] = None):
        self.nodes = nodes
        self.closer = closer
        self.pos = 0

    @property
    def done(self) -> bool:
        return self.pos >= len(self.nodes)

    def peek(self, offset: int = 0) -> Optional[dict]:
        i = self.pos + offset
        if i < len(self.nodes):
            return self.nodes[i]
        return None

    def next(self) -> dict:
        node = self.nodes[self.pos]
        self.pos += 1
        return node

    def end_error(self, construct: str):
        """The error for input running out inside `construct` at this level."""
        if self.closer is not None:
            return UnexpectedCharacter(self.closer)
        return UnexpectedEnd(construct)


class CatTransformer:
    """Resolves a token tree into instructions.

    State is reset by every `transform` call: the variable names declared so
    far, the flag marking that the previous construct was a number and the
    prelude of pre-named blocks.
    """

    def __init__(self, significant_whitespace: bool = False):
        self.significant_whitespace = significant_whitespace
        self.known_variables: Set[str] = set()
        self._after_number = False
        self._prelude: List[Instruction] = []

    def transform(self, tree: Any) -> List[Instruction]:
        self.known_variables = set()
        self._after_number = False
        self._prelude = []
        body, _ = self._read_sequence(_Tokens(lexical_tokens(tree)), PLAIN)
        # Pre-named blocks run before everything else.
        return self._prelude + body

    # -----------------------------------------------------------------
    # Sequences
    # -----------------------------------------------------------------

    def _read_sequence(self, tokens: _Tokens, mode: str) -> Tuple[List[Instruction], Optional[str]]:
        """Reads instructions until the end of the sequence for `mode`.

        Returns the instructions and the terminator that ended the sequence
        (None at the end of the token list). Closers left over at the top
        level are only consumed in PLAIN mode.
        """
        out: List[Instruction] = []
        while not tokens.done:
            after_number = self._after_number
            self._after_number = False
            node = tokens.peek()
            tag, text = node.get('tag'), _text(node)

            if tag == 'space':
                tokens.next()
                if self.significant_whitespace and not after_number:
                    out.append(string(text))
                continue

            if tag == 'closer':
                if mode in (IMPLICIT, PRENAMED):
                    return out, None
                if mode == BRACE:
                    raise UnexpectedCharacter(text)
                # Unmatched at the top level; rejected when executed.
                tokens.next()
                out.append(CLOSE_BLOCK)
                if text == ')':
                    out.append(EXECUTE_SCOPED)
                continue

            if tag == 'symbol' and text == '}':
                if mode in (BRACE, PRENAMED):
                    tokens.next()
                    return out, text
                if mode == IMPLICIT:
                    return out, text
                raise UnexpectedCharacter(text)

            if tag == 'symbol' and text == '$':
                if mode in (IMPLICIT, PRENAMED):
                    tokens.next()
                    return out, text
                raise UnexpectedCharacter(text)

            self._read_construct(tokens, out)

        if mode == BRACE:
            if tokens.closer is not None:
                raise UnexpectedCharacter(tokens.closer)
            raise UnterminatedBlock('{')
        return out, None

    def _read_group(self, node: dict) -> List[Instruction]:
        opener, inner, closer = _group_parts(node)
        if closer is None:
            raise UnterminatedBlock(opener)
        if MATCHING[opener] != closer:
            raise UnexpectedCharacter(closer)
        body, _ = self._read_sequence(_Tokens(inner, closer), PLAIN)
        out = [START_BLOCK, *body, CLOSE_BLOCK]
        if opener == '(':
            out.append(EXECUTE_SCOPED)
        return out

    def _skip_separators(self, tokens: _Tokens):
        if self.significant_whitespace:
            return
        while not tokens.done and tokens.peek().get('tag') == 'space':
            tokens.next()

    def _read_block_argument(self, tokens: _Tokens) -> List[Instruction]:
        """Reads the body following a combinator: an explicit `[...]` or an implicit block."""
        self._skip_separators(tokens)
        node = tokens.peek()
        if node is not None and node.get('tag') == 'group' and _first_char(node) == '[':
            tokens.next()
            opener, inner, closer = _group_parts(node)
            if closer is None:
                raise UnterminatedBlock(opener)
            if closer != ']':
                raise UnexpectedCharacter(closer)
            body, _ = self._read_sequence(_Tokens(inner, closer), PLAIN)
            return body
        body, _ = self._read_sequence(tokens, IMPLICIT)
        return body

    # -----------------------------------------------------------------
    # Constructs
    # -----------------------------------------------------------------

    def _read_construct(self, tokens: _Tokens, out: List[Instruction]):
        """Reads one construct starting at the current token."""
        node = tokens.next()
        tag, text = node.get('tag'), _text(node)
        match tag:
            case 'string':
                out.append(string(self._string_value(text)))
            case 'char_literal':
                if len(text) < 2:
                    raise UnexpectedEnd("character literal")
                out.append(string(text[1]))
            case 'number':
                out.append(integer(int(text)))
                self._after_number = True
            case 'quote':
                self._read_quote(text, tokens, out)
            case 'group':
                out.extend(self._read_group(node))
            case 'closer':
                out.append(CLOSE_BLOCK)
                if text == ')':
                    out.append(EXECUTE_SCOPED)
            case 'space':
                out.append(string(text))
            case _:
                self._read_symbol(text, tokens, out)

    def _read_symbol(self, c: str, tokens: _Tokens, out: List[Instruction]):
        following = tokens.peek()
        if c == '{':
            self._read_named_block(tokens, out)
        elif c == '>':
            name = self._read_name(tokens, "variable binding")
            self.known_variables.add(name)
            out.append(bind(name))
        elif c == '<':
            out.append(read(self._read_name(tokens, "variable read"), consume=True))
        elif (following is not None and following.get('tag') == 'symbol' and _text(following) == '{'
              and c not in SYNTAX and c not in OPERATORS and c not in COMBINATORS):
            tokens.next()
            self._read_prenamed_block(c, tokens, out)
        elif c in self.known_variables:
            out.append(read(c))
        elif c in COMBINATORS:
            body = self._read_block_argument(tokens)
            out.extend([START_BLOCK, *body, CLOSE_BLOCK, Instruction(COMBINATORS[c])])
        elif c in OPERATORS:
            out.append(OPERATORS[c])
        else:
            raise UnexpectedCharacter(c)

    def _read_name(self, tokens: _Tokens, construct: str) -> str:
        if tokens.done:
            raise tokens.end_error(construct)
        node = tokens.peek()
        c = _first_char(node)
        if node.get('tag') != 'symbol' or c in SYNTAX:
            raise UnexpectedCharacter(c)
        tokens.next()
        return c

    def _string_value(self, text: str) -> str:
        """Unescapes a string token. `\\x` stands for `x`."""
        buffer = []
        i = 1
        while i < len(text):
            c = text[i]
            if c == '\\':
                i += 1
                if i >= len(text):
                    break
                c = text[i]
            elif c == '"':
                return "".join(buffer)
            buffer.append(c)
            i += 1
        raise UnexpectedEnd("string literal")

    def _read_quote(self, text: str, tokens: _Tokens, out: List[Instruction]):
        """Wraps the next construct as a first-class command. Nothing is emitted at end of input."""
        if len(text) > 1:
            out.append(quoted(START_BLOCK if text[1] in MATCHING else CLOSE_BLOCK))
            return
        self._skip_separators(tokens)
        if tokens.done:
            return
        node = tokens.peek()
        c = _text(node)
        if node.get('tag') == 'symbol':
            if c in "}$":
                raise UnexpectedCharacter(c)
            if c in COMBINATORS and c not in self.known_variables:
                # A quoted combinator takes its function from the stack.
                tokens.next()
                out.append(quoted(Instruction(COMBINATORS[c])))
                return
        inner: List[Instruction] = []
        self._read_construct(tokens, inner)
        if inner:
            out.extend(inner[:-1])
            out.append(quoted(inner[-1]))

    def _read_named_block(self, tokens: _Tokens, out: List[Instruction]):
        body, _ = self._read_sequence(tokens, BRACE)
        name = self._read_name(tokens, "named block")
        self.known_variables.add(name)
        out.extend([START_BLOCK, *body, CLOSE_BLOCK, bind(name)])

    def _read_prenamed_block(self, name: str, tokens: _Tokens, out: List[Instruction]):
        body, _ = self._read_sequence(tokens, PRENAMED)
        # The binding is evaluated before anything else in the program.
        self._prelude[0:0] = [*body, bind(name)]
        self.known_variables.add(name)
        out.append(read(name))
