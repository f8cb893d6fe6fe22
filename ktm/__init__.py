"""
Kinematic template matching: predict where a pointing movement will stop
from the velocity profile observed so far.
"""

from .config import MatcherConfig, Mode, load_settings
from .errors import EmptyLibrary, IncompatibleLibrary, InsufficientData, KTMError, MalformedLogData
from .library import REPORT_COLUMNS, Match, TemplateLibrary, load_log, read_log
from .realtime import TRACE_COLUMNS, Prediction, RTTemplate
from .template import LOG_COLUMNS, Comparison, PrefixView, Template, split_overshoot
from .timeseries import TimedPoint

__version__ = "0.1.0"

__all__ = [
    'MatcherConfig', 'Mode', 'load_settings',
    'KTMError', 'MalformedLogData', 'InsufficientData', 'EmptyLibrary', 'IncompatibleLibrary',
    'TemplateLibrary', 'Match', 'load_log', 'read_log', 'REPORT_COLUMNS',
    'RTTemplate', 'Prediction', 'TRACE_COLUMNS',
    'Template', 'PrefixView', 'Comparison', 'split_overshoot', 'LOG_COLUMNS',
    'TimedPoint',
]
