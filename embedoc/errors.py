"""
Exceptions raised by embedoc
"""


class NotFoundError(Exception):
    """Raised when a lookup that must succeed finds no document."""

    def __init__(self, model_name: str, conditions=None):
        self.model_name = model_name
        self.conditions = conditions
        super().__init__(f"{model_name} not found ({conditions!r})")


class ContextError(Exception):
    """Raised when the global EntityManager is used while it is disallowed."""


class MapperConfigError(Exception):
    """Raised when the mapper is initialized with an invalid entity list or options."""


class PopulatePathError(ValueError):
    """Raised when a populate path names a field that is not a relation or embedded value."""

    def __init__(self, model_name: str, path: str, segment: str):
        self.model_name = model_name
        self.path = path
        self.segment = segment
        super().__init__(
            f"Entity '{model_name}' has no relation or embedded property '{segment}' (populate path '{path}')")
