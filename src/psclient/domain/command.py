"""
Command builder.

A Command is either a command name (cmdlet, function or script path) or a
block of script text, with an ordered set of named parameters and switches.
Several commands are chained into one pipeline by the executor.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

PARAMETER_NAME_PATTERN = re.compile(r"^[A-Za-z_][\w-]*$")


def _validate_name(name: str) -> str:
    if not name or not PARAMETER_NAME_PATTERN.match(name):
        raise ValueError(f"Invalid parameter name: {name!r}")
    return name


class Command:
    """
    One element of a pipeline.

    Parameter and switch names are case-insensitive. Setting a name that is
    already present replaces its value but keeps its original position.
    """

    def __init__(self, text: str, is_script: bool = False):
        if not text or not text.strip():
            raise ValueError("Command text cannot be empty")
        self.text = text
        self.is_script = is_script
        # lowercased name -> (name as given, value)
        self._parameters: dict[str, tuple[str, Any]] = {}
        self._switches: dict[str, str] = {}

    @classmethod
    def script(cls, text: str) -> Command:
        return cls(text, is_script=True)

    @classmethod
    def from_mapping(
        cls,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        switches: Optional[Iterable[str]] = None,
    ) -> Command:
        """Build a named command from a parameter mapping and switch names."""
        command = cls(name)
        for key, value in (parameters or {}).items():
            command.with_parameter(key, value)
        for switch in switches or ():
            command.with_switch(switch)
        return command

    def with_parameter(self, name: str, value: Any) -> Command:
        key = _validate_name(name).lower()
        if key in self._parameters:
            name = self._parameters[key][0]
        self._parameters[key] = (name, value)
        return self

    def with_switch(self, name: str) -> Command:
        key = _validate_name(name).lower()
        self._switches.setdefault(key, name)
        return self

    @property
    def parameters(self) -> list[tuple[str, Any]]:
        return list(self._parameters.values())

    @property
    def switches(self) -> list[str]:
        return list(self._switches.values())

    def get_parameter(self, name: str, default: Any = None) -> Any:
        entry = self._parameters.get(name.lower())
        return default if entry is None else entry[1]

    def has_switch(self, name: str) -> bool:
        return name.lower() in self._switches

    def __repr__(self) -> str:
        kind = "script" if self.is_script else "command"
        return f"Command({kind}={self.text!r}, parameters={[n for n, _ in self.parameters]}, switches={self.switches})"
