"""
System-wide constants for datasafe-ops.

Centralizes identifiers, defaults and exit codes used across modules.
"""

# Identifiers
OCID_PREFIX = "ocid1."

# Lifecycle states
STATE_ACTIVE = "ACTIVE"
STATE_NEEDS_ATTENTION = "NEEDS_ATTENTION"
STATE_INACTIVE = "INACTIVE"

# Only these states accept credential updates
CREDENTIAL_UPDATABLE_STATES = frozenset({STATE_ACTIVE, STATE_NEEDS_ATTENTION})
# Activation additionally accepts targets that were never activated
ACTIVATION_UPDATABLE_STATES = frozenset({STATE_INACTIVE, STATE_ACTIVE, STATE_NEEDS_ATTENTION})

# Connection options
CONNECTION_TYPE_ONPREM = "ONPREM_CONNECTOR"
NO_CONNECTOR_NAME = "none"

# Work request states used by --wait
DEFAULT_WAIT_STATES = ("SUCCEEDED", "FAILED")

# Credentials
DEFAULT_COMMON_USER_PREFIX = "C##"
DEFAULT_ROOT_NAME_PATTERN = r"_CDBROOT$"
ROOT_CONTAINER_TAG_KEYS = ("DBSec.Container", "DBSec.ContainerType")
ROOT_CONTAINER_TAG_VALUE = "CDBROOT"
SECRET_FILE_SUFFIX = "_pwd.b64"
HIDDEN = "[hidden]"

# Snapshots
DEFAULT_MAX_SNAPSHOT_AGE = "24h"
DEFAULT_AUTO_TARGET_SUFFIX = "_auto"

# Timeouts and retries
DEFAULT_CLI_TIMEOUT = 300  # seconds
DEFAULT_READ_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 1.0  # seconds

# Exit codes
EXIT_OK = 0
EXIT_TARGET_FAILURE = 1
EXIT_VALIDATION_ERROR = 2
EXIT_RESOLUTION_ERROR = 3
EXIT_SELECTION_ERROR = 4
EXIT_CREDENTIAL_ERROR = 5
EXIT_OPERATIONAL_ERROR = 6

# Tagging
DEFAULT_TAG_NAMESPACE = "DBSec"
DEFAULT_COMPARTMENT_ENV_PATTERN = r"^cmp-[^-]+-([^-]+)-projects$"
DEFAULT_ENVIRONMENTS = ("test", "qs", "prod")
UNDEFINED_TAG_VALUE = "undef"

# Audit trails (status field of an audit trail record)
AUDIT_TRAIL_RUNNING_STATUSES = frozenset({"STARTING", "COLLECTING", "RECOVERING", "IDLE", "RESUMING", "RETRYING"})
AUDIT_TRAIL_STARTABLE_STATUSES = frozenset({"NOT_STARTED"})
