from __future__ import annotations


class SqlaEntitiesError(Exception):
    """Base class for every error raised by sqla_entities."""


class UnsupportedOperator(SqlaEntitiesError, ValueError):
    """A condition key used an operator token nobody registered."""

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(
            f"Unsupported operator {token!r} in condition. "
            "Use `register_operator` to add custom operators."
        )


class OperatorAlreadyRegistered(SqlaEntitiesError, ValueError):
    """An operator token was registered twice."""

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Operator {token!r} is already registered")


class InvalidOperandError(SqlaEntitiesError, TypeError):
    """An operator received a value of the wrong shape."""


class UnknownRelation(SqlaEntitiesError, KeyError):
    """An eager-load path names a relation the entity does not define."""

    def __init__(self, entity: type, name: str) -> None:
        self.entity = entity
        self.name = name
        super().__init__(f"Relation {name!r} is not defined on entity {entity.__name__}")

    def __str__(self) -> str:
        return str(self.args[0])


class NoSuchMethod(SqlaEntitiesError, AttributeError):
    """Neither a relation proxy nor its result knows the requested attribute."""


class MissingPrimaryKey(SqlaEntitiesError, RuntimeError):
    """The operation requires a primary key that the entity type does not declare."""

    def __init__(self, entity: type) -> None:
        self.entity = entity
        super().__init__(f"Entity {entity.__name__} has no primary key field")
