"""Error taxonomy for tunnel provisioning.

Every error raised on the request path derives from NPortError and carries
the HTTP status it is reported with, so the router maps errors to the
JSON envelope in a single place.
"""

from __future__ import annotations


class NPortError(Exception):
    """Base class for errors surfaced to HTTP clients."""

    status: int = 500
    code: str | None = None

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_dict(self) -> dict[str, object]:
        """Render as the error envelope returned to clients."""
        return {"success": False, "error": self.message}


class ConfigError(NPortError):
    """One or more required environment bindings are missing."""

    status = 400

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required environment variables: {', '.join(self.missing)}")


class InvalidRequestError(NPortError):
    """The request body could not be used."""

    status = 400


class InvalidSubdomainError(NPortError):
    """Subdomain is not a valid DNS label."""

    status = 400
    code = "INVALID_SUBDOMAIN"

    def __init__(self, subdomain: str, reason: str) -> None:
        self.subdomain = subdomain
        super().__init__(f"{self.code}: Subdomain \"{subdomain}\" is invalid: {reason}")


class SubdomainProtectedError(NPortError):
    """Subdomain is reserved and may not back a tunnel.

    Reported as a 500 to stay compatible with existing clients.
    """

    status = 500
    code = "SUBDOMAIN_PROTECTED"

    def __init__(self, subdomain: str) -> None:
        self.subdomain = subdomain
        super().__init__(
            f"{self.code}: Subdomain \"{subdomain}\" is reserved and cannot be used. "
            "Please choose a different subdomain."
        )


class SubdomainInUseError(NPortError):
    """A live tunnel already serves this subdomain."""

    status = 500
    code = "SUBDOMAIN_IN_USE"

    def __init__(self, subdomain: str) -> None:
        self.subdomain = subdomain
        super().__init__(
            f"{self.code}: Subdomain \"{subdomain}\" is currently in use by an active tunnel."
        )


class ProviderError(NPortError):
    """The tunnel provider API call failed."""

    status = 502

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        errors: list[dict] | None = None,
    ) -> None:
        super().__init__(message, status=status)
        self.errors = errors or []


class ProviderTimeoutError(ProviderError):
    """The tunnel provider did not answer within the deadline."""

    status = 504

    def __init__(self, timeout: float | None = None) -> None:
        message = "Provider request timed out"
        if timeout:
            message = f"{message} after {timeout:g}s"
        super().__init__(message)
        self.timeout = timeout
