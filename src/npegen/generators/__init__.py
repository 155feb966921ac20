"""
Code generators and emitters.
"""

from .base import ExpandedFunction, Generator, GeneratedFile
from .specialization import SpecializationEmitter
from .dispatcher import DispatcherEmitter
from .registration import RegistrationEmitter, ModuleRegistrationEmitter
from .native_source import NativeSourceGenerator
from .python_stub import StubGenerator
from .manifest import ManifestGenerator

__all__ = [
    "ExpandedFunction",
    "Generator",
    "GeneratedFile",
    "SpecializationEmitter",
    "DispatcherEmitter",
    "RegistrationEmitter",
    "ModuleRegistrationEmitter",
    "NativeSourceGenerator",
    "StubGenerator",
    "ManifestGenerator",
]
