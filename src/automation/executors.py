"""Action executors, one per action type."""

from typing import Any, Mapping, Protocol

import structlog

from shared_types import ActionType

from .models import RuleAction

logger = structlog.get_logger()


class CapabilityUnavailableError(RuntimeError):
    """No executor (or external capability) is available for an action type."""


class ActionExecutionError(RuntimeError):
    """An executor tried and failed to perform an action."""


class ActionExecutor(Protocol):
    async def execute(self, action: RuleAction, context: Any) -> None: ...


def enrich_message(message: str, values: Mapping[str, Any] | None) -> str:
    """Fill {placeholder} occurrences from values. Unknown placeholders stay as-is."""
    if not values:
        return message
    for key, value in values.items():
        message = message.replace("{" + str(key) + "}", str(value))
    return message


class ExecutorRegistry:
    def __init__(self):
        self._executors: dict[ActionType, ActionExecutor] = {}

    def register(self, action_type: ActionType, executor: ActionExecutor) -> None:
        self._executors[ActionType(action_type)] = executor

    def unregister(self, action_type: ActionType) -> None:
        self._executors.pop(ActionType(action_type), None)

    def get(self, action_type: ActionType) -> ActionExecutor:
        try:
            return self._executors[ActionType(action_type)]
        except KeyError:
            raise CapabilityUnavailableError(
                f"no executor registered for {ActionType(action_type).value}"
            ) from None

    def __contains__(self, action_type: ActionType) -> bool:
        return ActionType(action_type) in self._executors

    @classmethod
    def with_logging_executors(cls) -> "ExecutorRegistry":
        registry = cls()
        executor = LoggingExecutor()
        for action_type in ActionType:
            registry.register(action_type, executor)
        return registry


class LoggingExecutor:
    """Logs actions instead of performing them. Keeps what it did in `performed`."""

    def __init__(self):
        self.performed: list[tuple[ActionType, dict]] = []

    async def execute(self, action: RuleAction, context: Any) -> None:
        params = dict(action.parameters)
        if action.type in (ActionType.SPOKEN_OUTPUT, ActionType.NOTIFICATION):
            params["message"] = enrich_message(params.get("message", ""), params.get("context"))
        self.performed.append((action.type, params))
        logger.info("action_performed", action_type=action.type.value, parameters=params)
