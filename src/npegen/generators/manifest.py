"""
Dispatch manifest generator.

Serializes a DispatchTable to ``<stem>.npe.json`` so that the Python runtime
can dispatch with exactly the table compiled into the native module.
"""

from __future__ import annotations

from pathlib import Path

from .base import ExpandedFunction, GeneratedFile, Generator


class ManifestGenerator(Generator):
    """Generator for JSON dispatch manifests."""

    def get_output_path(self, unit: ExpandedFunction) -> Path:
        return self.output_path(unit, ".npe.json")

    def generate(self, unit: ExpandedFunction) -> GeneratedFile:
        return GeneratedFile(
            path=self.get_output_path(unit),
            content=unit.table.to_json(),
            source=unit.spec.path,
        )
