"""
Document header configuration.

The Header call fills the LaTeX preamble from six fields: assignment title,
student name, student id, class name, semester and instructor. They are read
once per run, either from a YAML mapping or from the older plain-text format
with one field per line in that order.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Tuple

import yaml


YAML_SUFFIXES = {'.yaml', '.yml'}


class ConfigError(Exception):
    """Raised when the header configuration cannot be loaded."""


@dataclass(frozen=True)
class HeaderConfig:
    title: str = ''
    name: str = ''
    student_id: str = ''
    course: str = ''
    semester: str = ''
    instructor: str = ''

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def values(self) -> Tuple[str, ...]:
        """The fields in their fixed order."""
        return tuple(getattr(self, name) for name in self.field_names())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HeaderConfig':
        unknown = sorted(set(data) - set(cls.field_names()))
        if unknown:
            raise ConfigError(f"Unknown header field(s): {', '.join(unknown)}")
        return cls(**{key: '' if value is None else str(value) for key, value in data.items()})

    @classmethod
    def from_lines(cls, text: str) -> 'HeaderConfig':
        lines = text.splitlines()
        names = cls.field_names()
        if len(lines) < len(names):
            raise ConfigError(f"Expected {len(names)} header lines ({', '.join(names)}), got {len(lines)}")
        return cls(*(line.strip() for line in lines[:len(names)]))


def load_config(path) -> HeaderConfig:
    """Load header configuration from a .yaml/.yml mapping or a six-line text file."""
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")

    text = path.read_text(encoding='utf-8')

    if path.suffix.lower() not in YAML_SUFFIXES:
        return HeaderConfig.from_lines(text)

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return HeaderConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping of header fields, got {type(data).__name__}")
    return HeaderConfig.from_dict(data)
