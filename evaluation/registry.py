"""Registry of evaluation strategies with context-based selection."""
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from evaluation.base import EvaluationStrategy, STRATEGY_TYPES
from evaluation.numeric import NumericScoreEvaluator
from evaluation.fact_based import FactBasedEvaluator
from evaluation.hybrid import HybridEvaluator
from models.evaluation import EvaluationContext
from utils.error_handling import StrategySelectionError
from utils.logging_utils import get_logger

logger = get_logger("registry")

# Lower index wins
_TYPE_PRIORITY = {t: i for i, t in enumerate(STRATEGY_TYPES)}


@dataclass
class EvaluationRule:
    """Selects ``strategy_name`` whenever ``matches(context)`` is true."""
    name: str
    strategy_name: str
    matches: Callable[[EvaluationContext], bool]
    priority: int = 0


class EvaluationRegistry:
    """Named evaluation strategies plus the rules for picking one."""

    def __init__(self):
        self._strategies: Dict[str, EvaluationStrategy] = {}
        self._rules: List[EvaluationRule] = []
        self._default: Optional[str] = None

    def register(self, strategy: EvaluationStrategy):
        if strategy.name in self._strategies:
            logger.warning("Overwriting registered strategy", strategy=strategy.name)
        self._strategies[strategy.name] = strategy

    def unregister(self, name: str) -> bool:
        if name not in self._strategies:
            return False
        del self._strategies[name]
        if self._default == name:
            self._default = None
        self._rules = [r for r in self._rules if r.strategy_name != name]
        return True

    def get(self, name: str) -> Optional[EvaluationStrategy]:
        return self._strategies.get(name)

    def has(self, name: str) -> bool:
        return name in self._strategies

    def get_all(self) -> List[EvaluationStrategy]:
        return list(self._strategies.values())

    def get_names(self) -> List[str]:
        return list(self._strategies)

    def set_default(self, name: str):
        if name not in self._strategies:
            raise KeyError(f"Strategy '{name}' is not registered")
        self._default = name

    def get_default(self) -> Optional[EvaluationStrategy]:
        if self._default is None:
            return None
        return self._strategies.get(self._default)

    def add_rule(self, rule: EvaluationRule):
        """Insert a rule ahead of every rule with a lower priority."""
        if rule.strategy_name not in self._strategies:
            raise KeyError(f"Strategy '{rule.strategy_name}' is not registered")
        index = next(
            (i for i, r in enumerate(self._rules) if r.priority < rule.priority),
            len(self._rules)
        )
        self._rules.insert(index, rule)

    def remove_rule(self, name: str) -> bool:
        for i, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[i]
                return True
        return False

    def get_rules(self) -> List[EvaluationRule]:
        return list(self._rules)

    def clear_rules(self):
        self._rules = []

    def find_applicable(self, context: EvaluationContext) -> List[EvaluationStrategy]:
        return [s for s in self._strategies.values() if s.is_applicable(context)]

    def select_strategy(self, context: EvaluationContext) -> EvaluationStrategy:
        """
        Pick the strategy for ``context``.

        Matching rules are tried first in priority order. Otherwise the
        applicable strategies are ranked hybrid > fact-based > numeric > custom.
        With nothing applicable the default strategy is used.

        Raises:
            StrategySelectionError: No rule, applicable strategy or default
        """
        for rule in self._rules:
            if rule.matches(context) and rule.strategy_name in self._strategies:
                return self._strategies[rule.strategy_name]

        applicable = self.find_applicable(context)
        if applicable:
            # sorted() is stable, so registration order breaks ties
            return sorted(applicable, key=lambda s: _TYPE_PRIORITY.get(s.type, len(_TYPE_PRIORITY)))[0]

        default = self.get_default()
        if default is not None:
            return default

        raise StrategySelectionError(
            f"No suitable evaluation strategy for context: {context.model_dump_json()}"
        )

    def clear(self):
        self._strategies.clear()
        self._rules = []
        self._default = None

    def get_stats(self) -> Dict[str, object]:
        by_type: Dict[str, int] = {}
        for strategy in self._strategies.values():
            by_type[strategy.type] = by_type.get(strategy.type, 0) + 1
        return {
            "total_strategies": len(self._strategies),
            "strategies_by_type": by_type,
            "total_rules": len(self._rules),
            "has_default": self._default is not None,
        }


def create_default_registry() -> EvaluationRegistry:
    """Registry holding the numeric, fact-based and hybrid strategies; numeric is the default."""
    registry = EvaluationRegistry()
    numeric = NumericScoreEvaluator()
    facts = FactBasedEvaluator()
    registry.register(numeric)
    registry.register(facts)
    registry.register(HybridEvaluator(numeric, facts))
    registry.set_default(numeric.name)
    return registry
