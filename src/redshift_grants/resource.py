"""Lifecycle interface a plugin host uses to manage a resource."""

from abc import ABC
from abc import abstractmethod

from redshift_grants.models import SchemaGroupPrivilege


class ResourceHandler(ABC):
    """One method per lifecycle callback of the host.

    The host persists the identity returned by ``create`` (``state.id.serialize()``)
    and passes it back to ``exists``, ``read`` and ``import_state``. ``exists`` is
    called before ``read``, so ``read`` may treat a missing resource as an error.
    """

    @abstractmethod
    def create(self, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
        """Create the resource and return the state read back after creation."""

    @abstractmethod
    def read(self, identity: str) -> SchemaGroupPrivilege:
        """Return the live state of the resource."""

    @abstractmethod
    def update(self, current: SchemaGroupPrivilege, desired: SchemaGroupPrivilege) -> SchemaGroupPrivilege:
        """Converge the resource from ``current`` to ``desired`` and return the state read back."""

    @abstractmethod
    def delete(self, current: SchemaGroupPrivilege) -> None:
        """Remove the resource."""

    @abstractmethod
    def exists(self, identity: str) -> bool:
        """Whether the resource still exists, without side effects."""

    @abstractmethod
    def import_state(self, identity: str) -> list[SchemaGroupPrivilege]:
        """Adopt an existing resource given its identity."""
