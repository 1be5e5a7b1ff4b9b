"""
Signing-identity stores.

``DirectoryIdentityStore`` keeps each installed identity in its own
directory holding copies of the container, the profile and a
``metadata.json`` describing them.
"""

import json
import os
import shutil
import uuid
from pathlib import Path
from typing import Any, Dict, List, Protocol, Union

from colored_logger import get_colored_logger

from .errors import IdentityStoreError
from .identity_parser import SigningIdentity
from .profile import AuthorizationProfile

logger = get_colored_logger(__name__)

DEFAULT_STORE_DIRECTORY = "~/.bundle-files/certificates"
METADATA_FILE = "metadata.json"


class SigningIdentityStore(Protocol):
    def install(
        self,
        identity: SigningIdentity,
        profile: AuthorizationProfile,
        display_name: str,
    ) -> Path:
        """Persist a verified identity. Raises IdentityStoreError on failure."""
        ...


class DirectoryIdentityStore:
    def __init__(self, root: Union[str, Path] = DEFAULT_STORE_DIRECTORY):
        self.root = Path(os.path.expanduser(str(root)))

    def install(
        self,
        identity: SigningIdentity,
        profile: AuthorizationProfile,
        display_name: str,
    ) -> Path:
        target = self.root / uuid.uuid4().hex
        try:
            target.mkdir(parents=True)
            shutil.copy2(identity.source_path, target / identity.source_path.name)
            shutil.copy2(profile.path, target / profile.path.name)
            metadata = {
                "display_name": display_name,
                "common_name": identity.common_name,
                "team_identifier": profile.team_identifier,
                "profile_name": profile.name,
                "profile_uuid": profile.uuid,
                "expiration_date": (
                    profile.expiration_date.isoformat()
                    if profile.expiration_date
                    else None
                ),
                "fingerprint": identity.fingerprint,
                "container_file": identity.source_path.name,
                "profile_file": profile.path.name,
            }
            with open(target / METADATA_FILE, "w", encoding="utf-8") as f:
                json.dump(metadata, f, indent=2)
        except OSError as e:
            shutil.rmtree(target, ignore_errors=True)
            raise IdentityStoreError(str(e)) from e

        logger.info("Installed signing identity %s in %s", display_name, target)
        return target

    def list_installed(self) -> List[Dict[str, Any]]:
        """Metadata of every installed identity, sorted by display name."""
        if not self.root.is_dir():
            return []
        installed = []
        for child in self.root.iterdir():
            metadata_path = child / METADATA_FILE
            if not metadata_path.is_file():
                continue
            try:
                with open(metadata_path, "r", encoding="utf-8") as f:
                    installed.append(json.load(f))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable identity %s: %s", child.name, e)
        return sorted(installed, key=lambda m: str(m.get("display_name", "")).lower())
