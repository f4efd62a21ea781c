"""Plan definitions: the YAML loader and the built-in plans."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import ProvisorConfig
from ..contracts import RetryPolicy
from ..errors import InvalidPlanError
from ..host import HostContext
from ..plan import Plan
from ..steps import StepSpec

logger = logging.getLogger(__name__)


class PlanSpec(BaseModel):
    """Declarative plan as written in YAML or built in Python."""

    model_config = ConfigDict(extra="forbid")

    name: str
    description: Optional[str] = None
    notes: List[str] = Field(default_factory=list)
    steps: List[StepSpec] = Field(min_length=1)

    def build(self, host: HostContext, config: Optional[ProvisorConfig] = None) -> Plan:
        """Expand paths for ``host`` and return a validated ``Plan``."""
        config = config or ProvisorConfig()
        network_retry = RetryPolicy.network(
            attempts=config.retry.network_attempts, delay=config.retry.delay
        )
        steps = []
        for spec in self.steps:
            try:
                steps.append(spec.to_step(host, network_retry))
            except InvalidPlanError as exc:
                raise InvalidPlanError(str(exc), [spec.id]) from exc
        notes = [host.expand(note) for note in self.notes]
        return Plan(self.name, steps, description=self.description, notes=notes)


def load_plan_file(path: Union[str, Path]) -> PlanSpec:
    """Load a plan from a YAML file."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise InvalidPlanError(f"Unable to read plan file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise InvalidPlanError(f"Plan file {path} must contain a mapping")
    data.setdefault("name", path.stem)
    try:
        return PlanSpec.model_validate(data)
    except ValidationError as exc:
        raise InvalidPlanError(f"Invalid plan file {path}: {exc}") from exc


def _builtin_plans() -> Dict[str, Callable[[], PlanSpec]]:
    from .adaptix import adaptix_plan
    from .workstation import workstation_plan

    return {"adaptix": adaptix_plan, "workstation": workstation_plan}


def available_plans() -> Dict[str, PlanSpec]:
    """Return the built-in plans keyed by name."""
    return {name: factory() for name, factory in _builtin_plans().items()}


def resolve_plan(name_or_path: str) -> PlanSpec:
    """Find a built-in plan by name, or load ``name_or_path`` as a YAML file."""
    factories = _builtin_plans()
    if name_or_path in factories:
        return factories[name_or_path]()
    path = Path(name_or_path).expanduser()
    if path.suffix in (".yaml", ".yml") or path.exists():
        logger.debug(f"Loading plan from {path}")
        return load_plan_file(path)
    raise InvalidPlanError(
        f"Unknown plan {name_or_path!r}; available: {', '.join(sorted(factories))}"
    )


__all__ = ["PlanSpec", "available_plans", "load_plan_file", "resolve_plan"]
