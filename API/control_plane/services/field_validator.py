from typing import Any, List, Mapping

from control_plane.core.config import Settings
from control_plane.domain.container_request import (
    MOUNT_BOOLEAN_FIELDS,
    MOUNT_INTEGER_FIELDS,
    MOUNT_STRING_FIELDS,
    ContainerRequest,
    State,
)
from control_plane.domain.errors import (
    ConfigurationError,
    ConflictError,
    CredentialError,
    Violation,
)
from control_plane.domain.ports import CredentialService
from control_plane.services.mutation import Mutation

RUNTIME_TOKEN_PREFIX = "v2/"
MAX_PRIORITY = 1000


def is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _type_name(value: Any) -> str:
    return type(value).__name__


class FieldValidator:
    """
    Datatype, shape and semantic checks for a proposed container request.

    Every check runs; nothing stops at the first problem. The result is the
    full list of violations, each tagged with its field and error class.
    """

    def __init__(self, credentials: CredentialService, settings: Settings):
        self.credentials = credentials
        self.settings = settings

    async def validate(self, mutation: Mutation) -> List[Violation]:
        cr = mutation.proposed
        violations: List[Violation] = []

        violations += self._presence(cr)
        violations += self._metadata(cr)
        violations += self._numbers(cr)
        violations += self._command(cr.command)
        violations += self._environment(cr.environment)
        violations += self._mounts("mounts", cr.mounts)
        violations += self._mounts("secret_mounts", cr.secret_mounts)
        violations += self._secret_mounts_conflict(cr)

        shape = self._maps(cr, "runtime_constraints", "scheduling_parameters")
        violations += shape
        if cr.state == State.COMMITTED and not shape:
            violations += self._runtime_constraints(cr.runtime_constraints)
            violations += self._scheduling_parameters(cr.scheduling_parameters)

        if cr.runtime_token is not None and mutation.changed("runtime_token"):
            violations += await self._runtime_token(cr.runtime_token)

        return violations

    # -------------------------------
    # Scalars
    # -------------------------------
    def _presence(self, cr: ContainerRequest) -> List[Violation]:
        return [
            Violation(name, "can't be blank")
            for name in ("command", "container_image", "output_path", "cwd")
            if not getattr(cr, name)
        ]

    def _metadata(self, cr: ContainerRequest) -> List[Violation]:
        out = []
        if not isinstance(cr.owner_uuid, str) or not cr.owner_uuid:
            out.append(Violation("owner_uuid", f"must be a non-empty string, got {cr.owner_uuid!r}"))
        if not isinstance(cr.use_existing, bool):
            out.append(Violation("use_existing", f"must be a boolean but is {_type_name(cr.use_existing)}"))
        out += self._maps(cr, "properties")
        return out

    def _maps(self, cr: ContainerRequest, *names: str) -> List[Violation]:
        return [
            Violation(name, f"must be a map but is {_type_name(getattr(cr, name))}")
            for name in names
            if not isinstance(getattr(cr, name), Mapping)
        ]

    def _numbers(self, cr: ContainerRequest) -> List[Violation]:
        out = []
        if cr.priority is None:
            out.append(Violation("priority", "cannot be nil"))
        elif not is_integer(cr.priority) or not 0 <= cr.priority <= MAX_PRIORITY:
            out.append(Violation(
                "priority", f"must be an integer between 0 and {MAX_PRIORITY}, got {cr.priority!r}"
            ))
        if not is_integer(cr.output_ttl) or cr.output_ttl < 0:
            out.append(Violation(
                "output_ttl", f"must be a non-negative integer, got {cr.output_ttl!r}"
            ))
        if cr.container_count_max is not None and (
            not is_integer(cr.container_count_max) or cr.container_count_max < 1
        ):
            out.append(Violation(
                "container_count_max", f"must be a positive integer, got {cr.container_count_max!r}"
            ))
        return out

    # -------------------------------
    # Collections
    # -------------------------------
    def _command(self, command: Any) -> List[Violation]:
        if not isinstance(command, list):
            return [Violation("command", f"must be an array of strings but is {_type_name(command)}")]
        return [
            Violation("command", f"must be an array of strings but has entry {_type_name(c)}")
            for c in command
            if not isinstance(c, str)
        ]

    def _environment(self, environment: Any) -> List[Violation]:
        if not isinstance(environment, Mapping):
            return [Violation("environment", f"must be a map of string to string but is {_type_name(environment)}")]
        return [
            Violation(
                "environment",
                f"must be a map of string to string but has entry {_type_name(k)} to {_type_name(v)}",
            )
            for k, v in environment.items()
            if not isinstance(k, str) or not isinstance(v, str)
        ]

    def _mounts(self, name: str, mounts: Any) -> List[Violation]:
        if not isinstance(mounts, Mapping):
            return [Violation(name, f"must be a map of string to mount but is {_type_name(mounts)}")]

        out = []
        for key, spec in mounts.items():
            if not isinstance(key, str) or not isinstance(spec, Mapping):
                out.append(Violation(
                    name, f"must be a map of string to mount but has entry {_type_name(key)} to {_type_name(spec)}"
                ))
                continue
            if spec.get("kind") is None:
                out.append(Violation(name, f"{key}: each item must have a 'kind' field"))
            for f in MOUNT_STRING_FIELDS:
                if spec.get(f) is not None and not isinstance(spec[f], str):
                    out.append(Violation(name, f"{key}: {f} must be a string but is {_type_name(spec[f])}"))
            for f in MOUNT_INTEGER_FIELDS:
                if spec.get(f) is not None and (not is_integer(spec[f]) or spec[f] < 0):
                    out.append(Violation(name, f"{key}: {f} must be a non-negative integer but is {spec[f]!r}"))
            for f in MOUNT_BOOLEAN_FIELDS:
                if spec.get(f) is not None and not isinstance(spec[f], bool):
                    out.append(Violation(name, f"{key}: {f} must be a boolean but is {_type_name(spec[f])}"))
        return out

    def _secret_mounts_conflict(self, cr: ContainerRequest) -> List[Violation]:
        if not isinstance(cr.mounts, Mapping) or not isinstance(cr.secret_mounts, Mapping):
            return []
        overlap = sorted(set(cr.secret_mounts) & set(cr.mounts), key=str)
        if overlap:
            return [Violation(
                "secret_mounts", f"conflict with non-secret mounts: {', '.join(map(str, overlap))}", ConflictError
            )]
        return []

    # -------------------------------
    # Checks that only apply on commit
    # -------------------------------
    def _runtime_constraints(self, constraints: Mapping) -> List[Violation]:
        out = []
        for key, required in (("vcpus", True), ("ram", True), ("keep_cache_ram", False)):
            if not required and key not in constraints:
                continue
            value = constraints.get(key)
            if not is_integer(value) or value <= 0:
                out.append(Violation("runtime_constraints", f"[{key}]={value!r} must be a positive integer"))
        return out

    def _scheduling_parameters(self, params: Mapping) -> List[Violation]:
        out = []
        if "partitions" in params:
            partitions = params["partitions"]
            if not isinstance(partitions, list) or not all(isinstance(p, str) for p in partitions):
                out.append(Violation("scheduling_parameters", "partitions must be an array of strings"))
        preemptible = params.get("preemptible")
        if preemptible is not None and not isinstance(preemptible, bool):
            out.append(Violation("scheduling_parameters", "preemptible must be a boolean"))
        elif preemptible and not self.settings.PREEMPTIBLE_INSTANCES:
            out.append(Violation(
                "scheduling_parameters", "preemptible instances are not allowed", ConfigurationError
            ))
        if "max_run_time" in params:
            max_run_time = params["max_run_time"]
            if not is_integer(max_run_time) or max_run_time < 0:
                out.append(Violation("scheduling_parameters", "max_run_time must be a non-negative integer"))
        return out

    async def _runtime_token(self, token: Any) -> List[Violation]:
        if not isinstance(token, str) or not token.startswith(RUNTIME_TOKEN_PREFIX):
            return [Violation("runtime_token", "not a v2 token", CredentialError)]
        if await self.credentials.validate(token) is None:
            return [Violation("runtime_token", "failed validation", CredentialError)]
        return []
