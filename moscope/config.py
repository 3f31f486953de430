"""
Configuration handling for moscope.
"""

from dataclasses import dataclass, field, fields as dataclass_fields
from typing import List, Optional
import json
from pathlib import Path

from .formats.strings import StringFilter
from .output.report import ReportOptions
from .utils.string_utils import to_camel_case, to_snake_case


@dataclass
class Config:
    """Configuration options for moscope."""

    # Report sections
    show_header: bool = True
    show_load_commands: bool = True
    show_segments: bool = True
    show_dylibs: bool = True
    show_rpaths: bool = True
    show_symbols: bool = True
    show_strings: bool = False

    # Rendering
    color: bool = True
    sort_symbols: bool = False

    # String extraction
    min_string_length: int = 4
    max_strings: Optional[int] = None
    max_symbols: Optional[int] = None
    string_sections: List[str] = field(default_factory=list)
    exclude_sections: List[str] = field(default_factory=list)
    string_pattern: Optional[str] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'Config':
        """Load configuration from a JSON file."""
        if path is None:
            path = Path(__file__).parent / 'config.json'

        if not path.exists():
            return cls()

        with open(path, 'r') as f:
            data = json.load(f)

        converted = {to_snake_case(key): value for key, value in data.items()}

        # Filter to only include valid fields
        valid_fields = {f.name for f in dataclass_fields(cls)}
        filtered = {k: v for k, v in converted.items() if k in valid_fields}

        return cls(**filtered)

    def save(self, path: Path) -> None:
        """Save configuration to a JSON file."""
        data = {to_camel_case(key): value for key, value in self.__dict__.items()}

        with open(path, 'w') as f:
            json.dump(data, f, indent=2)

    def report_options(self, string_filter: Optional[StringFilter] = None) -> ReportOptions:
        """
        Build the report options.

        Raises:
            ValueError: If max_symbols is negative
        """
        if self.max_symbols is not None and self.max_symbols < 0:
            raise ValueError(f"Maximum symbol count must not be negative, got {self.max_symbols}")

        return ReportOptions(
            string_filter=string_filter,
            include_header=self.show_header,
            include_load_commands=self.show_load_commands,
            include_segments=self.show_segments,
            include_dylibs=self.show_dylibs,
            include_rpaths=self.show_rpaths,
            include_symbols=self.show_symbols,
            include_strings=self.show_strings,
            color=self.color,
            sort_symbols=self.sort_symbols,
            max_symbols=self.max_symbols,
        )

    def string_filter(self) -> StringFilter:
        """
        Compile the string extraction settings.

        Raises:
            RegexCompileError: If string_pattern does not compile
        """
        return StringFilter.build(
            min_length=self.min_string_length,
            max_count=self.max_strings,
            include_sections=self.string_sections or None,
            exclude_sections=self.exclude_sections or None,
            pattern=self.string_pattern,
        )
