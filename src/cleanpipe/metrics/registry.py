# Named metric views
# A view is a pure function of the cleaned frame with a fixed column schema.
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import pandas as pd

from ..exceptions import ConfigurationError

ViewBuilder = Callable[[pd.DataFrame], pd.DataFrame]


@dataclass(frozen=True)
class ViewDefinition:
    name: str
    dataset: str
    columns: Sequence[str]
    builder: ViewBuilder
    description: str = ""


class ViewRegistry:

    def __init__(self):
        self._views: Dict[str, ViewDefinition] = {}

    def register(self, definition: ViewDefinition) -> ViewDefinition:
        if definition.name in self._views:
            raise ConfigurationError(f"View '{definition.name}' is already registered")
        self._views[definition.name] = definition
        return definition

    def view(self, name: str, dataset: str, columns: Sequence[str], description: str = ""):
        def decorator(builder: ViewBuilder) -> ViewBuilder:
            self.register(ViewDefinition(name, dataset, tuple(columns), builder, description))
            return builder
        return decorator

    def get(self, name: str) -> ViewDefinition:
        try:
            return self._views[name]
        except KeyError:
            raise ConfigurationError(f"Unknown view '{name}'; registered views: {sorted(self._views)}")

    def names(self, dataset: Optional[str] = None) -> List[str]:
        return [
            name for name, definition in self._views.items()
            if dataset is None or definition.dataset == dataset
        ]


REGISTRY = ViewRegistry()
