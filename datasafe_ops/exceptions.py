"""
Custom exception hierarchy for datasafe-ops.

Every exception carries the process exit code the CLI reports for it.

Hierarchy:

    DataSafeOpsError (base)
    ├── OperationalError        — OCI CLI call failed (retryable for reads)
    │   ├── CliInvocationError  — non-zero exit or unparsable output
    │   └── CliNotFoundError    — oci executable missing
    ├── ValidationError         — bad arguments, reported before any query
    ├── ResolutionError         — name/id/compartment could not be resolved
    ├── NoMatchingTargetsError  — a filter was supplied and nothing matched
    ├── SelectionError
    │   ├── StaleSelectionError — snapshot too old or apply without override
    │   └── SnapshotError       — snapshot unreadable or malformed
    └── CredentialError
        └── InvalidCredentialsFileError

Rules:
    - Validation, resolution, selection and credential errors abort the run
      before any mutation is issued.
    - CliInvocationError raised by a mutation is caught by the executor,
      counted as a failed target, and the batch continues.
    - Everything else (AttributeError, TypeError, etc.): let crash.
"""
from datasafe_ops.constants import (
    EXIT_CREDENTIAL_ERROR,
    EXIT_OPERATIONAL_ERROR,
    EXIT_RESOLUTION_ERROR,
    EXIT_SELECTION_ERROR,
    EXIT_TARGET_FAILURE,
    EXIT_VALIDATION_ERROR,
)


class DataSafeOpsError(Exception):
    """Base exception for all datasafe-ops errors."""
    exit_code = EXIT_TARGET_FAILURE


# ============ OPERATIONAL (external CLI) ============

class OperationalError(DataSafeOpsError):
    """The external CLI could not complete a call.

    Treatment: read-only calls are retried with backoff; mutations are
    recorded as a failed target.
    """
    exit_code = EXIT_OPERATIONAL_ERROR


class CliInvocationError(OperationalError):
    """The CLI exited non-zero or returned output that is not JSON."""

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CliNotFoundError(OperationalError):
    """The configured CLI executable could not be found."""
    pass


# ============ INPUT (fatal before mutation) ============

class ValidationError(DataSafeOpsError):
    """Invalid argument combination, missing mode argument or bad pattern."""
    exit_code = EXIT_VALIDATION_ERROR


class ResolutionError(DataSafeOpsError):
    """A target, connector or compartment could not be resolved."""
    exit_code = EXIT_RESOLUTION_ERROR


class NoMatchingTargetsError(DataSafeOpsError):
    """A filter was supplied and no target matched it."""
    exit_code = EXIT_TARGET_FAILURE


class SelectionError(DataSafeOpsError):
    """A saved target selection cannot be used."""
    exit_code = EXIT_SELECTION_ERROR


class StaleSelectionError(SelectionError):
    """Snapshot is older than allowed, or apply was requested against it
    without the explicit override. This is a safety gate, never retried.
    """
    pass


class SnapshotError(SelectionError):
    """Snapshot file is missing, not JSON, or has an unsupported shape."""
    pass


# ============ CREDENTIALS ============

class CredentialError(DataSafeOpsError):
    """No usable (user, secret) pair could be produced."""
    exit_code = EXIT_CREDENTIAL_ERROR


class InvalidCredentialsFileError(CredentialError):
    """Credential file is not JSON or lacks userName/password."""
    pass
