"""Build-time manifest generation script for the bundled event corpus.

Scans ``fixtures/data`` for files named
``<name>-<legacy|cloudevent>-<input|output|converted-output>.json`` and writes
``fixtures/manifest.json``. With ``--check`` it only reports drift.
"""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from functions_conformance.events.envelopes import (
    decode_cloud_event,
    decode_legacy_event,
    parse_instant,
)
from functions_conformance.events.loader import (
    FILE_KINDS,
    INPUT,
    manifest_key,
)
from functions_conformance.models import DecodeError, Encoding

# Fixture directory (next to the loader)
FIXTURES_DIR = Path(__file__).parent / "fixtures"
DATA_DIR = FIXTURES_DIR / "data"
MANIFEST_PATH = FIXTURES_DIR / "manifest.json"


def breakdown_file_name(file_name: str) -> Optional[Tuple[str, Encoding, str]]:
    """Split a fixture file name into (fixture name, encoding, kind).

    Args:
        file_name: Base name such as ``"pubsub-legacy-converted-output.json"``.

    Returns:
        The parts, or None if the file is not a recognised fixture file.
    """
    if not file_name.endswith(".json"):
        return None
    stem = file_name[: -len(".json")]

    for kind in FILE_KINDS:
        if not stem.endswith("-" + kind):
            continue
        rest = stem[: -len(kind) - 1]
        for encoding in Encoding:
            suffix = "-" + encoding.value
            if rest.endswith(suffix) and len(rest) > len(suffix):
                return rest[: -len(suffix)], encoding, kind
        return None
    return None


def check_fixture_file(encoding: Encoding, raw: bytes) -> List[str]:
    """Check that a fixture file is a plausible event in its encoding.

    Returns:
        Problems found (empty if the file looks complete).
    """
    problems: List[str] = []
    try:
        if encoding is Encoding.CLOUD_EVENT:
            envelope = decode_cloud_event(raw)
            if envelope.time is None:
                problems.append("missing time")
        else:
            event = decode_legacy_event(raw)
            if event.event_id is None:
                problems.append("missing event ID")
            if event.event_type is None:
                problems.append("missing event type")
            if event.raw_resource is None:
                problems.append("missing resource")
            if parse_instant(event.timestamp) is None:
                problems.append(f"implausible timestamp {event.timestamp!r}")
    except DecodeError as e:
        problems.append(str(e))
    return problems


def generate_manifest(data_dir: Path = DATA_DIR) -> Tuple[Dict[str, Any], List[str]]:
    """Build the manifest for every fixture file under *data_dir*.

    Returns:
        Tuple of (manifest dict, problems) where problems lists unreadable,
        implausible or input-less fixtures.
    """
    entries: Dict[str, Dict[str, str]] = {}
    problems: List[str] = []

    for path in sorted(data_dir.glob("*.json")):
        parts = breakdown_file_name(path.name)
        if parts is None:
            problems.append(f"Unrecognised fixture file name: {path.name}")
            continue
        name, encoding, kind = parts
        for problem in check_fixture_file(encoding, path.read_bytes()):
            problems.append(f"{path.name}: {problem}")
        relative = path.relative_to(data_dir.parent).as_posix()
        entries.setdefault(name, {})[manifest_key(encoding, kind)] = relative

    for name, files in sorted(entries.items()):
        if not any(manifest_key(e, INPUT) in files for e in Encoding):
            problems.append(f"Fixture {name!r} has no input for any encoding")

    manifest = {
        "fixtures": [
            {"name": name, "files": files}
            for name, files in sorted(entries.items())
        ]
    }
    return manifest, problems


def manifest_to_json(manifest: Dict[str, Any]) -> str:
    """Serialize manifest to deterministic JSON string.

    Args:
        manifest: Manifest dict

    Returns:
        Formatted JSON string with trailing newline
    """
    return json.dumps(manifest, indent=2, sort_keys=True) + "\n"


def write_manifest(manifest: Dict[str, Any], path: Path = MANIFEST_PATH) -> None:
    path.write_text(manifest_to_json(manifest), encoding="utf-8")
    print(f"Generated {path}")


def check_drift(data_dir: Path = DATA_DIR, manifest_path: Path = MANIFEST_PATH) -> int:
    """Check if the committed manifest matches the fixture files.

    Returns:
        0 if the manifest is current, 1 if drift or fixture problems were found
    """
    expected, problems = generate_manifest(data_dir)
    drift_detected = bool(problems)
    for problem in problems:
        print(f"ERROR: {problem}", file=sys.stderr)

    if not manifest_path.exists():
        print(f"ERROR: Missing manifest file: {manifest_path}", file=sys.stderr)
        drift_detected = True
    else:
        actual = json.loads(manifest_path.read_text(encoding="utf-8"))
        if actual != expected:
            print(f"ERROR: Manifest drift detected in {manifest_path}", file=sys.stderr)
            print("--- Expected", file=sys.stderr)
            print(manifest_to_json(expected), file=sys.stderr)
            print("--- Actual", file=sys.stderr)
            print(manifest_to_json(actual), file=sys.stderr)
            drift_detected = True

    if drift_detected:
        print("\nManifest drift detected. Run without --check to regenerate.", file=sys.stderr)
        return 1

    print(f"All {len(expected['fixtures'])} fixtures are up to date.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for manifest generation script.

    Returns:
        Exit code (0 for success, 1 for failure/drift)
    """
    parser = argparse.ArgumentParser(
        description="Generate the event fixture manifest for functions-conformance"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check for manifest drift without writing files (CI mode)",
    )
    args = parser.parse_args(argv)

    if args.check:
        return check_drift()

    manifest, problems = generate_manifest()
    if problems:
        for problem in problems:
            print(f"ERROR: {problem}", file=sys.stderr)
        return 1
    write_manifest(manifest)
    return 0


if __name__ == "__main__":
    sys.exit(main())
