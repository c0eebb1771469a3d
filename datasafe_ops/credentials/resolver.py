"""
Credential Resolver.

Turns a layered set of credential sources into one (user, secret) pair per
scope. Precedence, highest first:

    1. structured credential file  {"userName": ..., "password": ...}
    2. explicit user / secret given on the command line
    3. configured defaults (YAML, DS_USER / DS_SECRET environment)
    4. base64 secret file: explicit path, or <user>_pwd.b64 in the secret dirs
    5. interactive prompt, unless prompting is disabled

User and secret are resolved independently through these layers (a
credential file provides both). The same secret is reused for both scopes
unless a root-specific secret is supplied.
"""
import base64
import binascii
import getpass
import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from datasafe_ops.constants import DEFAULT_COMMON_USER_PREFIX, DEFAULT_ROOT_NAME_PATTERN
from datasafe_ops.credentials.files import find_secret_file, read_secret_file
from datasafe_ops.domain.models import Credential, CredentialScope, Target, has_root_container_tag
from datasafe_ops.exceptions import CredentialError, InvalidCredentialsFileError
from datasafe_ops.monitoring.logger import get_logger
from datasafe_ops.monitoring.redaction import register_secret

logger = get_logger(__name__)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]+={0,2}$")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

PromptFn = Callable[[str], str]


def trim_trailing_crlf(value: str) -> str:
    return value.rstrip("\r\n")


def decode_if_base64(value: str) -> Tuple[str, bool]:
    """
    Return (secret, was_decoded).

    A value counts as base64 only if it is canonically padded and decodes to
    printable UTF-8; anything else is taken literally.
    """
    candidate = value.strip()
    if len(candidate) < 4 or len(candidate) % 4 or not _BASE64_RE.match(candidate):
        return value, False
    try:
        decoded = base64.b64decode(candidate, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return value, False
    decoded = trim_trailing_crlf(decoded)
    if _CONTROL_RE.search(decoded) or "\n" in decoded or "\r" in decoded:
        return value, False
    return decoded, True


def normalize_secret(value: str) -> str:
    """Decode base64 input, strip trailing CR/LF and reject empty results."""
    secret, decoded = decode_if_base64(trim_trailing_crlf(value))
    secret = trim_trailing_crlf(secret)
    if not secret:
        raise CredentialError("decoded secret is empty")
    if decoded:
        logger.info("Decoded secret from base64 input")
    return secret


def load_credentials_file(path: str | Path) -> Tuple[str, str]:
    """Read {"userName", "password"} from a JSON credential file."""
    path = Path(path).expanduser()
    if not path.is_file():
        raise InvalidCredentialsFileError(f"credentials file not found: {path}")
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidCredentialsFileError(
            "invalid credentials file format. Expected JSON with userName/password fields"
        ) from e
    if not isinstance(payload, dict):
        raise InvalidCredentialsFileError(
            "invalid credentials file format. Expected JSON with userName/password fields"
        )
    user = payload.get("userName") or ""
    password = payload.get("password") or ""
    if not user or not password:
        raise InvalidCredentialsFileError(
            "invalid credentials file format. Expected JSON with userName/password fields"
        )
    return user, trim_trailing_crlf(password)


@dataclass(frozen=True)
class CredentialSources:
    """Everything the resolver may draw from, gathered once at startup."""
    credentials_file: Optional[str] = None
    user: Optional[str] = None
    secret: Optional[str] = field(default=None, repr=False)
    root_secret: Optional[str] = field(default=None, repr=False)
    default_user: Optional[str] = None
    default_secret: Optional[str] = field(default=None, repr=False)
    secret_file: Optional[str] = None
    secret_dirs: Sequence[str] = ()
    no_prompt: bool = False


class CredentialResolver:
    """
    Resolve credentials per scope and classify targets as root or leaf.

    Args:
        sources: Credential inputs
        common_user_prefix: Prefix of common (root container) users, e.g. C##
        root_name_pattern: Regex on the display name marking root targets
        root_tag_keys: Freeform tag keys checked when use_tags is enabled
        prompt: Interactive secret reader; defaults to getpass
    """

    def __init__(
        self,
        sources: CredentialSources,
        common_user_prefix: str = DEFAULT_COMMON_USER_PREFIX,
        root_name_pattern: str = DEFAULT_ROOT_NAME_PATTERN,
        root_tag_keys: Sequence[str] = (),
        prompt: Optional[PromptFn] = None,
    ):
        self.sources = sources
        self.common_user_prefix = common_user_prefix or ""
        self.root_name_re = re.compile(root_name_pattern)
        self.root_tag_keys = tuple(root_tag_keys)
        self._prompt = prompt or getpass.getpass
        self._file_credentials: Optional[Tuple[str, str]] = None
        self._shared_secret: Optional[str] = None
        self._resolved: Dict[CredentialScope, Credential] = {}

    # ------------------------------------------------------------------
    # Scope handling
    # ------------------------------------------------------------------

    def is_root_target(self, target: Target, force_root: bool = False, use_tags: bool = False) -> bool:
        if force_root:
            return True
        if self.root_name_re.search(target.display_name or ""):
            return True
        return use_tags and has_root_container_tag(target, self.root_tag_keys)

    def scope_for(self, target: Target, force_root: bool = False, use_tags: bool = False) -> CredentialScope:
        if self.is_root_target(target, force_root=force_root, use_tags=use_tags):
            return CredentialScope.ROOT
        return CredentialScope.LEAF

    def base_user(self) -> str:
        user = self.sources.user or self.sources.default_user
        if not user:
            raise CredentialError("user not specified. Use -U/--ds-user, --cred-file, or set DS_USER")
        return user

    def user_for_scope(self, scope: CredentialScope, base_user: Optional[str] = None) -> str:
        """Strip any common prefix, then add it back for the root scope."""
        user = base_user if base_user is not None else self.base_user()
        prefix = self.common_user_prefix
        if prefix and user.startswith(prefix):
            user = user[len(prefix):]
        if scope == CredentialScope.ROOT and prefix:
            return f"{prefix}{user}"
        return user

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, scope: CredentialScope = CredentialScope.LEAF) -> Credential:
        """Return the credential for scope, resolving (and prompting) once."""
        if scope in self._resolved:
            return self._resolved[scope]

        if self.sources.credentials_file:
            if self._file_credentials is None:
                self._file_credentials = load_credentials_file(self.sources.credentials_file)
                logger.info("Credentials loaded from file", path=self.sources.credentials_file)
            user, secret = self._file_credentials
            credential = Credential(user=user, secret=secret, scope=scope)
        else:
            user = self.user_for_scope(scope)
            credential = Credential(user=user, secret=self._secret_for(scope), scope=scope)

        register_secret(credential.secret)
        self._resolved[scope] = credential
        logger.info("Using credentials", user=credential.user, scope=scope.value)
        return credential

    def _secret_for(self, scope: CredentialScope) -> str:
        if scope == CredentialScope.ROOT and self.sources.root_secret:
            register_secret(self.sources.root_secret)
            return normalize_secret(self.sources.root_secret)
        if self._shared_secret is None:
            self._shared_secret = self._resolve_shared_secret(scope)
        return self._shared_secret

    def _resolve_shared_secret(self, scope: CredentialScope) -> str:
        # An explicit -P is used even when empty, so "" fails instead of falling through
        if self.sources.secret is not None:
            register_secret(self.sources.secret)
            return normalize_secret(self.sources.secret)
        if self.sources.default_secret:
            register_secret(self.sources.default_secret)
            return normalize_secret(self.sources.default_secret)

        path = self._locate_secret_file(scope)
        if path is not None:
            secret = read_secret_file(path)
            logger.info("Loaded secret from file", path=str(path))
            return secret

        if self.sources.no_prompt:
            raise CredentialError(
                "secret not specified and prompting disabled. Use -P/--ds-secret, --secret-file, or DS_SECRET"
            )

        user = self.user_for_scope(scope)
        logger.info("Secret not provided, prompting", user=user)
        secret = trim_trailing_crlf(self._prompt(f"Enter secret for user '{user}': ") or "")
        if not secret:
            raise CredentialError("secret cannot be empty")
        return secret

    def _locate_secret_file(self, scope: CredentialScope) -> Optional[Path]:
        if self.sources.secret_file:
            path = find_secret_file("", (), explicit=self.sources.secret_file)
            if path is None:
                raise CredentialError(f"secret file not found: {self.sources.secret_file}")
            return path

        alternate = CredentialScope.LEAF if scope == CredentialScope.ROOT else CredentialScope.ROOT
        candidates: List[str] = []
        for each in (scope, alternate):
            user = self.user_for_scope(each)
            if user not in candidates:
                candidates.append(user)
        for index, user in enumerate(candidates):
            path = find_secret_file(user, self.sources.secret_dirs)
            if path is not None:
                if index:
                    logger.info("Using secret file of alternate user", user=user)
                return path
        return None
