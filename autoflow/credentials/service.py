"""Stored credentials: CRUD, export and import."""
from __future__ import annotations

from typing import Optional

import structlog

from autoflow.credentials.sync import get_credential_synchable_data, merge_remote_credential_data
from autoflow.credentials.types import get_credential_type
from autoflow.db.repositories import CredentialRepository
from autoflow.errors import BadRequestError, NotFoundError
from autoflow.eventbus import MessageEventBus
from autoflow.models import NodeCredential
from autoflow.models.credential import Credential, CredentialCreate, CredentialUpdate
from autoflow.models.workflow import _utcnow

logger = structlog.get_logger()


class CredentialsService:
    def __init__(self, repository: CredentialRepository, event_bus: Optional[MessageEventBus] = None):
        self.repository = repository
        self.event_bus = event_bus

    async def _audit(self, event_name: str, credential: Credential) -> None:
        if self.event_bus is not None:
            await self.event_bus.send_event(
                event_name,
                {"credentialId": credential.id, "credentialName": credential.name, "credentialType": credential.type},
            )

    async def get(self, credential_id: str) -> Credential:
        credential = await self.repository.get(credential_id)
        if credential is None:
            raise NotFoundError(f"Credential with ID '{credential_id}' could not be found")
        return credential

    async def list(self, credential_type: Optional[str] = None) -> list[Credential]:
        return await self.repository.list(credential_type)

    async def create(self, body: CredentialCreate, owned_by: Optional[str] = None) -> Credential:
        if get_credential_type(body.type) is None:
            raise BadRequestError(f"Unknown credential type '{body.type}'")
        credential = Credential(
            name=body.name,
            type=body.type,
            data=body.data,
            is_global=body.is_global,
            owned_by=owned_by,
        )
        credential = await self.repository.save(credential)
        logger.info("credential_created", credential_id=credential.id, type=credential.type)
        await self._audit("n8n.audit.user.credentials.created", credential)
        return credential

    async def update(self, credential_id: str, body: CredentialUpdate) -> Credential:
        credential = await self.get(credential_id)
        changes = body.model_dump(exclude_unset=True)
        if "data" in changes and changes["data"] is not None:
            # Partial data updates keep the secrets that were not sent
            changes["data"] = {**(credential.data or {}), **changes["data"]}
        credential = credential.model_copy(update={**changes, "updated_at": _utcnow()})
        credential = await self.repository.save(credential)
        logger.info("credential_updated", credential_id=credential.id)
        await self._audit("n8n.audit.user.credentials.updated", credential)
        return credential

    async def delete(self, credential_id: str) -> None:
        credential = await self.get(credential_id)
        await self.repository.delete(credential_id)
        logger.info("credential_deleted", credential_id=credential_id)
        await self._audit("n8n.audit.user.credentials.deleted", credential)

    async def resolve(self, reference: NodeCredential, credential_type: str) -> dict:
        """Decrypted data for a node's credential reference."""
        credential = await self.repository.get(reference.id) if reference.id else None
        if credential is None:
            raise NotFoundError(f"Credential with ID '{reference.id}' could not be found")
        if credential.type != credential_type:
            raise BadRequestError(
                f"Credential '{credential.name}' is of type '{credential.type}', expected '{credential_type}'"
            )
        return dict(credential.data or {})

    # =========================================================================
    # Export / import
    # =========================================================================

    async def export(self) -> list[dict]:
        """Every credential with only its synchable data."""
        exported = []
        for credential in await self.repository.list():
            data = credential.public()
            data["data"] = get_credential_synchable_data(credential.data)
            exported.append(data)
        return exported

    async def import_credentials(self, entries: list[dict]) -> list[Credential]:
        """Merge exported credentials into existing ones by id, create the rest."""
        imported = []
        for entry in entries:
            remote = Credential.model_validate(entry)
            local = await self.repository.get(remote.id)
            if local is None:
                credential = remote.model_copy(update={"data": get_credential_synchable_data(remote.data)})
            else:
                credential = local.model_copy(update={
                    "name": remote.name,
                    "is_global": remote.is_global,
                    "data": merge_remote_credential_data(local.data, remote.data),
                    "updated_at": _utcnow(),
                })
            imported.append(await self.repository.save(credential))
        logger.info("credentials_imported", count=len(imported))
        return imported
