# ============================================
# BASE TOOL INTERFACE
# ============================================

import inspect
from abc import ABC, abstractmethod
from typing import Any

_JSON_TYPES = {int: "integer", bool: "boolean", float: "number", dict: "object", list: "array"}


class Tool(ABC):
    """Base class for all tools"""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        pass

    @property
    def parameters_schema(self) -> dict[str, Any]:
        """Override to provide a custom parameter schema"""
        return self._generate_schema_from_signature()

    def _generate_schema_from_signature(self) -> dict[str, Any]:
        """Auto-generate parameter schema from execute method signature"""
        sig = inspect.signature(self.execute)
        properties = {}
        required = []

        for param_name, param in sig.parameters.items():
            if param_name in ("self", "kwargs") or param.kind == param.VAR_KEYWORD:
                continue
            param_type = _JSON_TYPES.get(param.annotation, "string")
            properties[param_name] = {"type": param_type, "description": f"Parameter {param_name}"}
            if param.default == inspect.Parameter.empty:
                required.append(param_name)

        return {"type": "object", "properties": properties, "required": required}

    def describe(self) -> dict[str, Any]:
        return {"name": self.name, "description": self.description, "parameters": self.parameters_schema}

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        pass

    def validate_params(self, **kwargs: Any) -> tuple[bool, str | None]:
        """Validate parameters before execution"""
        sig = inspect.signature(self.execute)
        for param_name, param in sig.parameters.items():
            if param_name in ("self", "kwargs") or param.kind == param.VAR_KEYWORD:
                continue
            if param.default == inspect.Parameter.empty and param_name not in kwargs:
                return False, f"Missing required parameter: {param_name}"
        return True, None
