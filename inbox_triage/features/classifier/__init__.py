"""
Message classification: rules, learned categories, heuristics and an
optional AI hint, composed by ClassificationEngine.
"""

from inbox_triage.features.classifier.engine import ClassificationEngine
from inbox_triage.features.classifier.learning_system import LearningSystem
from inbox_triage.features.classifier.rules_engine import RulesEngine

__all__ = ["ClassificationEngine", "LearningSystem", "RulesEngine"]
