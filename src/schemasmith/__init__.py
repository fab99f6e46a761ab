"""
schemasmith - Dataset schema pipeline.

Generate test inputs, infer a schema, refine it, validate it against real
datasets, and open a pull request with it.
"""

from schemasmith.controller import PipelineController, build_controller, open_controller
from schemasmith.models import PipelineReport, PipelineRequest

__version__ = "0.1.0"
__all__ = [
    "PipelineController",
    "PipelineReport",
    "PipelineRequest",
    "__version__",
    "build_controller",
    "open_controller",
]
