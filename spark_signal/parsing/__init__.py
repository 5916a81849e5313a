from spark_signal.parsing.base import ParsedMessage
from spark_signal.parsing.envelope import EnvelopeParser, ParserState
from spark_signal.parsing.line_reader import LineReader, iter_stream_lines

__all__ = [
    "ParsedMessage",
    "EnvelopeParser",
    "ParserState",
    "LineReader",
    "iter_stream_lines",
]
