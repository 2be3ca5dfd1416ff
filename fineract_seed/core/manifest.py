"""Template manifest — which direct-upload template goes to which endpoint.

The manifest is an optional YAML file next to the templates:

    templates:
      Offices:
        endpoint: offices/uploadtemplate
      Clients:
        endpoint: clients/uploadtemplate
        params: {legalFormType: CLIENTS_PERSON}
      ClientTemplate:
        endpoint: clients/template
        method: GET

Keys are matched against the template file name, then against its stem.
Without a manifest file the built-in table is used.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ValidationError

from fineract_seed.core.models import HttpMethod

logger = logging.getLogger(__name__)

# endpoint fragment -> multipart entityType
ENTITY_TYPE_HINTS = (
    ("clients", "clients"),
    ("savingsproducts", "savingsproducts"),
    ("tellers", "tellers"),
    ("roles", "roles"),
)

CLIENT_UPLOAD_ENDPOINT = "clients/uploadtemplate"


class ManifestError(ValueError):
    """Raised when a manifest file exists but cannot be used."""


class TemplateSpec(BaseModel):
    endpoint: str
    method: HttpMethod = HttpMethod.POST
    params: dict[str, str] = {}
    entity_type: Optional[str] = None

    def resolved_entity_type(self) -> Optional[str]:
        if self.entity_type:
            return self.entity_type
        for fragment, entity_type in ENTITY_TYPE_HINTS:
            if fragment in self.endpoint:
                return entity_type
        return None

    def resolved_params(self) -> dict[str, str]:
        params = dict(self.params)
        if CLIENT_UPLOAD_ENDPOINT in self.endpoint:
            params.setdefault("legalFormType", "CLIENTS_PERSON")
        return params


class UploadManifest(BaseModel):
    templates: dict[str, TemplateSpec] = {}

    def spec_for(self, file_name: str) -> Optional[TemplateSpec]:
        by_key = {key.lower(): spec for key, spec in self.templates.items()}
        name = Path(file_name).name.lower()
        return by_key.get(name) or by_key.get(Path(name).stem)


DEFAULT_MANIFEST = UploadManifest(templates={
    "Offices": TemplateSpec(endpoint="offices/uploadtemplate"),
    "Staffs": TemplateSpec(endpoint="staff/uploadtemplate"),
    "Users": TemplateSpec(endpoint="users/uploadtemplate"),
    "ChartOfAccounts": TemplateSpec(endpoint="glaccounts/uploadtemplate"),
    "SavingsAccount": TemplateSpec(endpoint="savingsaccounts/uploadtemplate"),
})


def load_manifest(path: Path) -> UploadManifest:
    """Load the manifest at `path`, or the built-in table when it is absent."""
    if not path.exists():
        logger.info(f"No template manifest at {path}; using built-in endpoint table")
        return DEFAULT_MANIFEST

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML in template manifest {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ManifestError(f"Invalid manifest format in {path}: expected a YAML mapping")

    try:
        manifest = UploadManifest(**data)
    except ValidationError as e:
        raise ManifestError(f"Invalid template manifest {path}: {e}") from e

    logger.info(f"Loaded template manifest {path} with {len(manifest.templates)} entries")
    return manifest
