"""Error taxonomy for server bootstrap.

Every failure detected while loading configuration, building the logging
pipeline or binding listeners is raised as a subclass of
:class:`ServerKitError`. The ``kind`` attribute classifies the failure so the
embedding application can report it without matching on message text.
"""

from __future__ import annotations


class ServerKitError(Exception):
    """Base class for all bootstrap errors."""

    kind = "server_kit_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigNotFoundError(ServerKitError):
    """No configuration document exists at any of the searched paths."""

    kind = "config_not_found"

    def __init__(self, app_name: str, tried: list[str]) -> None:
        self.app_name = app_name
        self.tried = tried
        super().__init__(
            f"The server configuration for '{app_name}' could not be found "
            f"(tried: {', '.join(tried)})."
        )


class ConfigMalformedError(ServerKitError):
    """The configuration document exists but could not be read or parsed."""

    kind = "config_malformed"

    def __init__(self, path: str, details: str) -> None:
        self.path = path
        self.details = details
        super().__init__(
            f"Failed to parse the contents of the server configuration file "
            f"'{path}': {details}"
        )


class MissingFieldError(ServerKitError):
    """A field required by the selected deployment variant is absent."""

    kind = "missing_field"

    def __init__(self, field: str, variant: object | None = None) -> None:
        self.field = field
        self.variant = variant
        if variant is None:
            message = f"Required configuration field '{field}' is not specified."
        else:
            message = (
                f"Required configuration field '{field}' is not specified "
                f"for the {variant} deployment variant."
            )
        super().__init__(message)


class ForbiddenFieldError(ServerKitError):
    """A field that the selected variant fixes itself was supplied."""

    kind = "forbidden_field"

    def __init__(self, field: str, variant: object, hint: str) -> None:
        self.field = field
        self.variant = variant
        super().__init__(hint)


class UnknownVariantError(ServerKitError):
    """``startup_type`` does not name an available deployment variant."""

    kind = "unknown_variant"

    def __init__(self, value: str, available: list[str] | None = None) -> None:
        self.value = value
        self.available = available or []
        message = f"The server deployment method '{value}' could not be determined."
        if self.available:
            message += f" Choose one of: {', '.join(self.available)}."
        super().__init__(message)


class InvalidLevelError(ServerKitError):
    kind = "invalid_level"

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"Incorrect logging level '{value}'. "
            "Choose one of: error, warn, info, debug, trace."
        )


class InvalidRotationError(ServerKitError):
    kind = "invalid_rotation"

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(
            f"Incorrect log rotation '{value}'. "
            "Choose one of: never, daily, hourly, minutely."
        )


class WatchFailureError(ServerKitError):
    """The port file watch failed before a valid port was written."""

    kind = "watch_failure"


class LogBackendInitError(ServerKitError):
    """The logging backend could not be created or was installed twice."""

    kind = "log_backend_init_failure"


class BindFailureError(ServerKitError):
    kind = "bind_failure"

    def __init__(self, address: str, reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to bind {address}: {reason}")


class CertificateFailureError(ServerKitError):
    kind = "certificate_failure"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Certificate provisioning failed: {reason}")


class MigrationSpawnError(ServerKitError):
    """The pre-start migration binary could not be launched."""

    kind = "migration_spawn_failure"


__all__ = [
    "BindFailureError",
    "CertificateFailureError",
    "ConfigMalformedError",
    "ConfigNotFoundError",
    "ForbiddenFieldError",
    "InvalidLevelError",
    "InvalidRotationError",
    "LogBackendInitError",
    "MigrationSpawnError",
    "MissingFieldError",
    "ServerKitError",
    "UnknownVariantError",
    "WatchFailureError",
]
