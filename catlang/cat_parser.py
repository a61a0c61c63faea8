"""
Turns Catlang source text into a flat list of instructions.

Parsing runs in two stages: the koine grammar in `grammar/cat_grammar.yaml`
splits the source into literals, single characters and bracket groups, and
CatTransformer resolves that tree into instructions.
"""

from pathlib import Path
from typing import Any, List, Optional, Set

from koine import Parser as GrammarParser

from catlang.cat_datatypes import Instruction, ParseError
from catlang.cat_transformer import CatTransformer

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "cat_grammar.yaml"


class Parser:
    """Parses Catlang source into instructions.

    The grammar parser is built once and shared. `commands` and
    `known_variables` describe the most recent `parse` call.
    """

    _grammar: Optional[GrammarParser] = None

    def __init__(self, significant_whitespace: bool = False):
        if Parser._grammar is None:
            Parser._grammar = GrammarParser.from_file(str(GRAMMAR_PATH))
        self.grammar = Parser._grammar
        self.significant_whitespace = significant_whitespace
        self.commands: List[Instruction] = []
        self.known_variables: Set[str] = set()

    def parse_tree(self, text: str) -> Any:
        """Runs the grammar alone and returns its token tree."""
        parse_out = self.grammar.parse(text)
        if isinstance(parse_out, dict) and 'status' in parse_out:
            if parse_out.get('status') != 'success':
                raise ParseError(self._format_grammar_error(parse_out))
            return parse_out.get('ast')
        return parse_out

    def parse(self, text: str) -> List[Instruction]:
        tree = self.parse_tree(text)
        transformer = CatTransformer(significant_whitespace=self.significant_whitespace)
        self.commands = transformer.transform(tree)
        self.known_variables = transformer.known_variables
        return self.commands

    def _format_grammar_error(self, parse_out: dict) -> str:
        node = parse_out.get('error_node') or {}
        base = parse_out.get('error_message') or "parse failed"
        line, col = node.get('line'), node.get('col')
        if line is not None and col is not None:
            return f"{base} (line {line}, col {col})"
        return base


def parse(text: str, significant_whitespace: bool = False) -> List[Instruction]:
    """Parses `text` and returns its instructions. Raises ParseError on failure."""
    return Parser(significant_whitespace=significant_whitespace).parse(text)
