# Copyright (c) Syntropy Systems
"""Pipeline stages."""

from .discovery import DatasetDiscovery
from .input_generation import InputGenerationLoop, InputGenerator
from .input_validator import InputValidator
from .refiner import RefinementResult, SchemaRefiner
from .synthesizer import SchemaSynthesizer, split_for_validation
from .validator import SchemaValidator, require_success
from .variant_runner import VariantRunner

__all__ = [
    "DatasetDiscovery",
    "InputGenerationLoop",
    "InputGenerator",
    "InputValidator",
    "RefinementResult",
    "SchemaRefiner",
    "SchemaSynthesizer",
    "SchemaValidator",
    "VariantRunner",
    "require_success",
    "split_for_validation",
]
