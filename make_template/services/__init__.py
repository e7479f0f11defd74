"""Service layer for undo logs and restoration."""

from make_template.services.categorizer import FileCategorizer
from make_template.services.defaults import DefaultsManager
from make_template.services.engine import RestorationEngine
from make_template.services.planner import RestorationPlanner
from make_template.services.processor import RestorationProcessor
from make_template.services.prompter import InteractivePrompter
from make_template.services.sanitizer import Sanitizer
from make_template.services.undo_log import UndoLogManager

__all__ = [
    'DefaultsManager',
    'FileCategorizer',
    'InteractivePrompter',
    'RestorationEngine',
    'RestorationPlanner',
    'RestorationProcessor',
    'Sanitizer',
    'UndoLogManager',
]
