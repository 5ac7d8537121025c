"""
Parser base module - abstract base class for instance readers.

All parsers inherit from Parser and implement parse() (from a path) and
parse_text() (from a string). Both return an application instance object.

Design Notes:
------------
- Parsers keep no state beyond their configuration
- Malformed input raises ValueError with the offending line number
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ParserConfig:
    """
    Configuration options for parsers.

    Attributes:
        encoding: File encoding (default UTF-8)
        comment_prefixes: Lines starting with one of these are skipped
    """
    encoding: str = "utf-8"
    comment_prefixes: tuple = ("#", "c ")


class Parser(ABC):
    """
    Abstract base class for instance parsers.

    Subclasses must implement:
    - parse_text(): Build an instance from file contents

    Optional overrides:
    - can_parse(): Check if the parser can handle a path
    - get_format_name(): Return human-readable format name

    Example:
        >>> class MyFormatParser(Parser):
        ...     def parse_text(self, text: str, name: str = "") -> MyInstance:
        ...         return MyInstance(...)
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        self.config = config or ParserConfig()

    @abstractmethod
    def parse_text(self, text: str, name: str = "") -> Any:
        """
        Build an instance from the contents of a file.

        Args:
            text: File contents
            name: Instance name used when the text does not carry one

        Raises:
            ValueError: If the text is malformed
        """
        pass

    def parse(self, path: Union[str, Path]) -> Any:
        """
        Read a file and return the instance.

        Raises:
            FileNotFoundError: If path doesn't exist
            ValueError: If the file is malformed
        """
        path = Path(path)
        logger.debug("[%s] reading %s", self.get_format_name(), path)
        return self.parse_text(self._read_file(path), name=path.stem)

    def can_parse(self, path: Union[str, Path]) -> bool:
        """Default: the path exists and is a file."""
        return Path(path).is_file()

    def get_format_name(self) -> str:
        return self.__class__.__name__.replace("Parser", "")

    def _read_file(self, path: Union[str, Path]) -> str:
        with open(path, 'r', encoding=self.config.encoding) as f:
            return f.read()

    def _data_lines(self, text: str) -> List[tuple]:
        """
        Split text into (line_number, tokens) pairs.

        Blank lines and comment lines are skipped; line numbers are 1-based.
        """
        lines = []
        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith(self.config.comment_prefixes):
                continue
            lines.append((number, line.split()))
        return lines

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"
