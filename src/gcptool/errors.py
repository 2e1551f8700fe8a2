"""Exception hierarchy for gcptool."""


class GcpToolError(Exception):
    """Base exception for gcptool errors."""


class ProviderUnavailable(GcpToolError):
    """The Compute Engine / Resource Manager API call failed."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Provider call failed ({operation}){detail}")


class NotFound(GcpToolError):
    """No instance matches the query in any accessible project."""

    def __init__(self, query: str, message: str | None = None):
        self.query = query
        super().__init__(message or f"Could not find instance '{query}'")


class InstanceNotFoundInProject(NotFound):
    """The named instance does not exist in the given project."""

    def __init__(self, project: str, instance: str):
        self.project = project
        self.instance = instance
        super().__init__(
            instance, f"Instance '{instance}' not found in project '{project}'"
        )


class InvalidSelection(GcpToolError):
    """An interactive choice was not a number within the candidate range."""

    def __init__(self, selection: object, count: int):
        self.selection = selection
        self.count = count
        super().__init__(f"Invalid selection '{selection}' (expected 1-{count})")


class WrongRole(GcpToolError):
    """The query names a host class that cannot serve the requested flow."""

    def __init__(self, query: str, role: str):
        self.query = query
        self.role = role
        super().__init__(f"'{query}' looks like a {role} instance")


class ZoneNotFound(GcpToolError):
    """The zone of an instance or disk could not be determined."""

    def __init__(self, project: str, name: str):
        self.project = project
        self.name = name
        super().__init__(f"Could not find zone for '{name}' in project '{project}'")


class SnapshotFailed(GcpToolError):
    """Snapshot creation was rejected or did not complete."""

    def __init__(self, disk: str, snapshot_name: str, cause: Exception | None = None):
        self.disk = disk
        self.snapshot_name = snapshot_name
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Failed to create snapshot '{snapshot_name}' of disk '{disk}'{detail}"
        )


class OperationCancelled(GcpToolError):
    """The operator declined a confirmation prompt."""


class NoAddress(GcpToolError):
    """The instance has neither an external nor an internal IP."""

    def __init__(self, instance: str, ip_type: str = "any"):
        self.instance = instance
        self.ip_type = ip_type
        super().__init__(f"Could not get {ip_type} IP for {instance}")


class ConfirmationRequired(GcpToolError):
    """A confirmation prompt was needed but no terminal can answer it."""

    def __init__(self, verb: str):
        self.verb = verb
        super().__init__(
            f"Refusing to {verb} without confirmation; re-run with --force"
        )


class ConfigError(GcpToolError):
    """An environment override holds an unusable value."""

    def __init__(self, variable: str, value: str, reason: str):
        self.variable = variable
        self.value = value
        super().__init__(f"Invalid {variable}={value!r}: {reason}")
