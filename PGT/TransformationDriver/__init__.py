from .transformation_config import TransformationConfig
from .transformation_driver import (
    ArtifactGenerator,
    ConcurrentTransformationError,
    TransformationDriver,
    TransformationResult,
)

__all__ = [
    "TransformationConfig",
    "ArtifactGenerator",
    "ConcurrentTransformationError",
    "TransformationDriver",
    "TransformationResult",
]
