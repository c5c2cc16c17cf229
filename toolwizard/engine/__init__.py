"""Wizard engine - interprets declarative tool definitions."""

from .backend import ActionBackend, HttpActionBackend, MockActionBackend, JobStatusReport
from .config import EngineSettings, load_settings
from .engine import WizardEngine, WizardStatus, WizardView
from .errors import (
    ToolWizardError,
    ConfigurationError,
    BackendError,
    ToolLoadError,
    JobAlreadyActiveError,
)
from .loader import ToolLoader
from .schema import GENERIC_ERROR_STEP, ToolDefinition, StepDefinition, FieldSpec, StepType

__all__ = [
    'ActionBackend',
    'HttpActionBackend',
    'MockActionBackend',
    'JobStatusReport',
    'EngineSettings',
    'load_settings',
    'WizardEngine',
    'WizardStatus',
    'WizardView',
    'ToolWizardError',
    'ConfigurationError',
    'BackendError',
    'ToolLoadError',
    'JobAlreadyActiveError',
    'ToolLoader',
    'GENERIC_ERROR_STEP',
    'ToolDefinition',
    'StepDefinition',
    'FieldSpec',
    'StepType',
]
