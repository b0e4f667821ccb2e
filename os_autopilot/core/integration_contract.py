# os_autopilot/core/integration_contract.py
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class AdapterKind(str, Enum):
    MODEL = "model"
    INPUT = "input"
    SCREEN = "screen"


class AdapterContract(BaseModel):
    name: str
    adapter_class: str
    kinds: List[AdapterKind] = []
    dependencies: Optional[List[str]] = None
    config_options: Optional[Dict[str, Any]] = None

    def provides(self, kind: AdapterKind) -> bool:
        return kind in self.kinds
