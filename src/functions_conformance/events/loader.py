"""Canonical event corpus for functions-conformance.

Provides EventFixture (frozen dataclass) and EventCorpus for data-driven
validation runs. Reads from the bundled manifest.json and the fixture JSON
files it references.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from functions_conformance.models import Encoding

_FIXTURES_DIR = Path(__file__).parent / "fixtures"
_MANIFEST_PATH = _FIXTURES_DIR / "manifest.json"

INPUT = "input"
OUTPUT = "output"
CONVERTED_OUTPUT = "converted-output"

# Checked longest-first so "converted-output" is not read as "output".
FILE_KINDS: Tuple[str, ...] = (CONVERTED_OUTPUT, INPUT, OUTPUT)


def manifest_key(encoding: Encoding, kind: str) -> str:
    """Return the manifest key for a fixture file, e.g. ``"legacy-input"``."""
    return f"{encoding.value}-{kind}"


def parse_manifest_key(key: str) -> Tuple[Encoding, str]:
    """Split a manifest key back into its encoding and file kind.

    Raises:
        ValueError: If *key* does not name a known encoding and kind.
    """
    for encoding in Encoding:
        prefix = encoding.value + "-"
        if key.startswith(prefix) and key[len(prefix):] in FILE_KINDS:
            return encoding, key[len(prefix):]
    raise ValueError(
        f"Unknown fixture file key: {key!r}. "
        f"Expected '<{'|'.join(e.value for e in Encoding)}>-"
        f"<{'|'.join(FILE_KINDS)}>'"
    )


@dataclass(frozen=True)
class EventFixture:
    """A named, pre-recorded event with per-encoding inputs and outputs."""

    name: str
    inputs: Dict[Encoding, bytes] = field(default_factory=dict)
    outputs: Dict[Encoding, bytes] = field(default_factory=dict)
    converted_outputs: Dict[Encoding, bytes] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.inputs:
            raise ValueError(
                f"Fixture {self.name!r} must define an input for at least one encoding"
            )

    def __repr__(self) -> str:
        """Human-readable representation."""
        return (
            f"EventFixture(name={self.name}, "
            f"inputs={sorted(e.value for e in self.inputs)}, "
            f"outputs={sorted(e.value for e in self.outputs)})"
        )

    def output(self, encoding: Encoding, is_conversion: bool = False) -> Optional[bytes]:
        if is_conversion and encoding in self.converted_outputs:
            return self.converted_outputs[encoding]
        return self.outputs.get(encoding)


class EventCorpus:
    """Immutable, name-indexed collection of event fixtures."""

    def __init__(self, fixtures: Dict[str, EventFixture]) -> None:
        self._fixtures = dict(fixtures)

    @classmethod
    def load(cls, manifest_path: Optional[Path] = None) -> "EventCorpus":
        """Load a corpus from a manifest file.

        Args:
            manifest_path: Path to a ``manifest.json``. Defaults to the bundled
                manifest. Fixture paths are resolved relative to its directory.

        Returns:
            A populated :class:`EventCorpus`.

        Raises:
            FileNotFoundError: If the manifest or a referenced fixture file is missing.
            ValueError: If an entry is malformed or a name is duplicated.
        """
        path = manifest_path or _MANIFEST_PATH
        with open(path, "r", encoding="utf-8") as fh:
            manifest: Dict[str, Any] = json.load(fh)

        fixtures: Dict[str, EventFixture] = {}
        for entry in manifest["fixtures"]:
            name: str = entry["name"]
            if name in fixtures:
                raise ValueError(f"Duplicate fixture name in manifest: {name!r}")

            slots: Dict[str, Dict[Encoding, bytes]] = {
                INPUT: {}, OUTPUT: {}, CONVERTED_OUTPUT: {},
            }
            files: Dict[str, str] = entry["files"]
            for key, rel_path in files.items():
                encoding, kind = parse_manifest_key(key)
                full_path = path.parent / rel_path
                if not full_path.exists():
                    raise FileNotFoundError(
                        f"Fixture file referenced in manifest does not exist: {full_path}"
                    )
                slots[kind][encoding] = full_path.read_bytes()

            fixtures[name] = EventFixture(
                name=name,
                inputs=slots[INPUT],
                outputs=slots[OUTPUT],
                converted_outputs=slots[CONVERTED_OUTPUT],
            )

        return cls(fixtures)

    def __len__(self) -> int:
        return len(self._fixtures)

    def __iter__(self) -> Iterator[EventFixture]:
        for name in self.names():
            yield self._fixtures[name]

    def __contains__(self, name: object) -> bool:
        return name in self._fixtures

    def names(self) -> List[str]:
        return sorted(self._fixtures)

    def get(self, name: str) -> Optional[EventFixture]:
        return self._fixtures.get(name)

    def names_for(self, encoding: Encoding) -> List[str]:
        """Return the names of fixtures that have an input for *encoding*.

        Names are sorted for deterministic scenario ordering.
        """
        return sorted(
            name for name, fixture in self._fixtures.items()
            if encoding in fixture.inputs
        )

    def input_data(self, name: str, encoding: Encoding) -> Optional[bytes]:
        fixture = self._fixtures.get(name)
        if fixture is None:
            return None
        return fixture.inputs.get(encoding)

    def output_data(
        self,
        name: str,
        encoding: Encoding,
        is_conversion: bool = False,
    ) -> Optional[bytes]:
        """Return the expected output for a fixture in *encoding*.

        When *is_conversion* is set (the input was sent in the other encoding)
        a converted-output override takes precedence over the canonical output.
        Unknown names and missing encodings yield ``None``.
        """
        fixture = self._fixtures.get(name)
        if fixture is None:
            return None
        return fixture.output(encoding, is_conversion)


@lru_cache(maxsize=1)
def default_corpus() -> EventCorpus:
    """Return the bundled corpus, loaded once per process."""
    return EventCorpus.load()
