"""
Credential commands: update, activate and save-secret.

Credentials are resolved once per scope. Root-container targets (name
pattern, --root, and for activation the DBSec container tags) get the
common-user prefixed user.
"""
from pathlib import Path
from typing import Collection, Optional, Sequence

from datasafe_ops.catalog.targets import TargetSelection
from datasafe_ops.config.config import Config
from datasafe_ops.constants import (
    ACTIVATION_UPDATABLE_STATES,
    CREDENTIAL_UPDATABLE_STATES,
    STATE_INACTIVE,
)
from datasafe_ops.credentials.files import CredentialFileSet, write_secret_file
from datasafe_ops.credentials.resolver import CredentialResolver, normalize_secret
from datasafe_ops.domain.models import RunOutcome, Target, TargetResult
from datasafe_ops.domain.protocols import DataSafeClient
from datasafe_ops.exceptions import CredentialError
from datasafe_ops.execution.executor import ExecutionOptions
from datasafe_ops.monitoring.logger import get_logger
from datasafe_ops.monitoring.redaction import register_secret
from datasafe_ops.services.base import BaseService

logger = get_logger(__name__)


class CredentialService(BaseService):
    def __init__(self, config: Config, client: DataSafeClient, resolver: CredentialResolver):
        super().__init__(config, client)
        self.resolver = resolver

    def update(
        self,
        selection: TargetSelection,
        options: ExecutionOptions,
        force_root: bool = False,
    ) -> RunOutcome:
        """Rotate credentials on ACTIVE / NEEDS_ATTENTION targets."""
        return self._run(
            selection,
            options,
            force_root=force_root,
            use_tags=False,
            updatable_states=CREDENTIAL_UPDATABLE_STATES,
            default_states=None,
        )

    def activate(
        self,
        selection: TargetSelection,
        options: ExecutionOptions,
        force_root: bool = False,
    ) -> RunOutcome:
        """Set credentials on targets that were registered but never activated."""
        return self._run(
            selection,
            options,
            force_root=force_root,
            use_tags=True,
            updatable_states=ACTIVATION_UPDATABLE_STATES,
            default_states=(STATE_INACTIVE,),
        )

    def _run(
        self,
        selection: TargetSelection,
        options: ExecutionOptions,
        force_root: bool,
        use_tags: bool,
        updatable_states: Collection[str],
        default_states: Optional[Sequence[str]],
    ) -> RunOutcome:
        targets = self.catalog.resolve(selection, apply=options.apply, default_states=default_states)
        executor = self.executor(options)

        # Resolve every needed scope up front so a credential error aborts before any update
        scopes = {t.id: self.resolver.scope_for(t, force_root=force_root, use_tags=use_tags) for t in targets}
        credentials = {scope: self.resolver.resolve(scope) for scope in dict.fromkeys(scopes.values())}
        logger.info("Credentials resolved", targets=len(targets), scopes=",".join(s.value for s in credentials))

        with CredentialFileSet() as credential_files:

            def handle(target: Target) -> TargetResult:
                credential = credentials[scopes[target.id]]
                return executor.apply_credentials(target, credential, credential_files, updatable_states)

            return executor.run_batch(targets, handle, label=lambda t: t.label)


def save_secret(user: str, secret: str, secret_dirs: Sequence[str], output: Optional[Path] = None) -> Path:
    """Write <user>_pwd.b64 into the first secret directory or to output."""
    if not user:
        raise CredentialError("user not specified. Use -U/--ds-user")
    register_secret(secret)
    plain = normalize_secret(secret)
    register_secret(plain)
    directory = Path(secret_dirs[0]) if secret_dirs else None
    path = write_secret_file(user, plain, directory=directory, path=output)
    logger.info("Secret file written", user=user, path=str(path))
    return path
