"""CalCommand - Command Normalization & Temporal Resolution Engine

Turns free-form scheduling utterances ("schedule a meeting at 9pm PST called
West Coast Sync") and optional upstream drafts into validated calendar,
reminder and note commands.
"""

__version__ = "0.1.0"
__author__ = "CalCommand Team"
__description__ = "Command Normalization & Temporal Resolution Engine"

from .core.config_manager import ConfigManager, EngineConfig
from .core.error_handler import CalCommandError, ResolutionError, ResolutionIssue
from .scheduling.command_normalizer import CommandNormalizer, normalize
from .scheduling.models import (
    CommandKind,
    DraftCommand,
    NormalizationResult,
    NormalizationState,
    RawUtterance,
    StructuredCommand,
)

__all__ = [
    "ConfigManager",
    "EngineConfig",
    "CalCommandError",
    "ResolutionError",
    "ResolutionIssue",
    "CommandNormalizer",
    "normalize",
    "CommandKind",
    "DraftCommand",
    "NormalizationResult",
    "NormalizationState",
    "RawUtterance",
    "StructuredCommand",
]
