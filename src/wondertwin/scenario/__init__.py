"""
Scenario engine.

v2 scenarios are JSON files with captures, templates, and JSONPath
assertions; v1 scenarios are the older YAML format.
"""

from wondertwin.scenario.loader import load_scenario, scenario_paths
from wondertwin.scenario.runner import Runner, ScenarioResult, StepResult

__all__ = ["Runner", "ScenarioResult", "StepResult", "load_scenario", "scenario_paths"]
