"""
Comment and string-literal awareness for the content scanner.

The check is line-local and stateless: it does not track block comment
state across lines. A line that merely mentions ``/*`` is suppressed even
outside a real comment, and a line in the middle of a multi-line block
comment is not suppressed unless it carries a delimiter itself.
"""
from typing import List, Sequence, Union

LINE_COMMENT_MARKERS = ("//", "#")
BLOCK_COMMENT_DELIMITERS = ("/*", "*/")
TRIPLE_QUOTE_DELIMITERS = ('"""', "'''")


def split_lines(content: str) -> List[str]:
    """Split file content on newlines, tolerating CRLF endings."""
    return [line.rstrip("\r") for line in content.split("\n")]


def is_suppressed_line(line: str) -> bool:
    """Return True if a single line looks like a comment or docstring line."""
    if line.strip().startswith(LINE_COMMENT_MARKERS):
        return True
    if any(delimiter in line for delimiter in BLOCK_COMMENT_DELIMITERS):
        return True
    return any(delimiter in line for delimiter in TRIPLE_QUOTE_DELIMITERS)


def is_suppressed(content: Union[str, Sequence[str]], line_number: int) -> bool:
    """
    Check whether findings on ``line_number`` (1-indexed) should be suppressed.

    Args:
        content: Full file content, or its already-split lines
        line_number: 1-indexed line to classify

    Returns:
        True if the line is a comment/string line; False otherwise,
        including for out-of-range line numbers
    """
    lines = split_lines(content) if isinstance(content, str) else list(content)
    if line_number < 1 or line_number > len(lines):
        return False
    return is_suppressed_line(lines[line_number - 1])
