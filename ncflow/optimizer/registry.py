"""
Rewrite rule registration with decorator support.

Rules register themselves with @register_rule at import time. The pipeline
asks the registry for the ordered rules that apply to a controller; each
rule's predicate then decides from the options whether it runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum
from importlib import import_module

from ncflow import config
from ncflow.config import TRACE

from .options import Controller, FanucOptions, HeidenhainOptions, OptimizationOptions

logger = logging.getLogger(__name__)


class Stage(IntEnum):
    NORMALIZE = 1
    REDUNDANCY = 2
    CONSOLIDATION = 3
    FEED_ARC = 4
    CONTROLLER = 5


@dataclass
class RuleContext:
    """Per-call inputs shared by every rule of one optimize run."""

    controller: Controller
    options: OptimizationOptions
    warnings: list[str] = field(default_factory=list)

    @property
    def profile(self) -> config.ControllerProfile:
        return config.controller_profile(self.controller.value)

    @property
    def fanuc(self) -> FanucOptions:
        return self.options.fanuc or FanucOptions()

    @property
    def heidenhain(self) -> HeidenhainOptions:
        return self.options.heidenhain or HeidenhainOptions()


RuleFunc = Callable[[list[str], RuleContext], list[str]]


@dataclass(frozen=True)
class Rule:
    name: str
    stage: Stage
    description: str
    func: RuleFunc
    enabled: Callable[[RuleContext], bool]
    controllers: frozenset[Controller] | None = None
    order: int = 0

    def applies_to(self, controller: Controller) -> bool:
        return self.controllers is None or controller in self.controllers


class RuleRegistry:
    """
    Singleton registry for rewrite rules.

    Rules register themselves using the @register_rule decorator. Rule
    modules are imported on first lookup so their decorators run.
    """

    _instance: RuleRegistry | None = None
    _RULE_MODULES = ("ncflow.optimizer.rules", "ncflow.optimizer.fanuc", "ncflow.optimizer.heidenhain")

    def __new__(cls) -> RuleRegistry:
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not hasattr(self, "_initialized"):
            self._rules: dict[str, Rule] = {}
            self._discovered = False
            self._initialized = True

    def register(self, rule: Rule) -> None:
        """
        Register a rule.

        Raises:
            ValueError: If another function is already registered under the name
        """
        existing = self._rules.get(rule.name)
        if existing is not None:
            if existing.func is not rule.func:
                raise ValueError(f"Rule '{rule.name}' is already registered by {existing.func.__name__}")
            return
        self._rules[rule.name] = rule
        logger.debug(f"Registered rule '{rule.name}' (stage {rule.stage.name})")

    def get_rule(self, name: str) -> Rule | None:
        if not self._discovered:
            self.discover_rules()
        return self._rules.get(name)

    def list_registered_rules(self) -> list[str]:
        if not self._discovered:
            self.discover_rules()
        return [rule.name for rule in self._ordered()]

    def rules_for(self, controller: Controller) -> list[Rule]:
        """Rules applicable to ``controller`` in pipeline order."""
        if not self._discovered:
            self.discover_rules()
        return [rule for rule in self._ordered() if rule.applies_to(controller)]

    def _ordered(self) -> list[Rule]:
        return sorted(self._rules.values(), key=lambda r: (r.stage, r.order))

    def discover_rules(self) -> None:
        """Import every rule module so its decorators register."""
        if self._discovered:
            return
        for module_name in self._RULE_MODULES:
            import_module(module_name)
            logger.log(TRACE, f"Loaded rule module {module_name}")
        self._discovered = True
        logger.debug(f"Rule discovery complete: {len(self._rules)} rules")


_registry = RuleRegistry()


def register_rule(
    name: str,
    *,
    stage: Stage,
    description: str,
    enabled: Callable[[RuleContext], bool],
    controllers: tuple[Controller, ...] | None = None,
) -> Callable[[RuleFunc], RuleFunc]:
    """
    Decorator registering a rewrite rule.

    Args:
        name: Unique rule name
        stage: Pipeline stage; rules run by stage, then registration order
        description: Improvement entry recorded when the rule changes output
        enabled: Predicate on the run context deciding whether the rule runs
        controllers: Restrict the rule to these controllers (None = all)
    """

    def decorator(func: RuleFunc) -> RuleFunc:
        rule = Rule(
            name=name,
            stage=stage,
            description=description,
            func=func,
            enabled=enabled,
            controllers=frozenset(controllers) if controllers else None,
            order=len(_registry._rules),
        )
        _registry.register(rule)
        return func

    return decorator
