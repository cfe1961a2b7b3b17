from dataclasses import dataclass


@dataclass(frozen=True)
class Actor:
    """Who is performing a mutation.

    ``container_uuid`` is set when the caller authenticated with a token
    issued to a running execution unit; requests it creates point back at
    that unit.
    """
    uuid: str
    is_admin: bool = False
    container_uuid: str | None = None
    is_system: bool = False

    @property
    def privileged(self) -> bool:
        return self.is_admin or self.is_system


# Used only for side effects the control plane performs on its own
# (priority propagation, finalization).
SYSTEM_ACTOR = Actor(uuid="system", is_admin=True, is_system=True)
