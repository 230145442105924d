"""Exceptions raised by agentrem operations."""


class AgentremError(Exception):
    """Base class for errors surfaced to callers."""


class ValidationError(AgentremError):
    """Malformed input: priority, trigger configuration, dates, recurrence."""


class NotFoundError(AgentremError):
    """Unknown reminder or dependency id."""


class DataAccessError(AgentremError):
    """The reminder store cannot be opened or queried."""
