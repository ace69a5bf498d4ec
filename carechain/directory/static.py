# carechain/directory/static.py
import json
import logging
import os
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Set

from carechain.core.types import SYSTEM_ORG
from . import SHARED_KEY_ID, OrgDirectory

logger = logging.getLogger(__name__)

RESERVED_IDS = frozenset({SHARED_KEY_ID, SYSTEM_ORG})
DEMO_ORGS = ("Hospital", "Lab", "Insurance")
DEMO_SHARED_SECRET = "SharedHealthcareKey2025!"


class StaticDirectory(OrgDirectory):
    """
    Fixed, in-memory set of organizations and their pre-shared secrets.
    Read-only after construction, so it can be shared between threads.
    """

    def __init__(self, keys: Mapping[str, str], validators: Optional[Iterable[str]] = None):
        self._keys: Dict[str, str] = {k: v for k, v in keys.items() if v}
        if validators is None:
            validators = (k for k in self._keys if k not in RESERVED_IDS)
        elif isinstance(validators, (str, bytes)):
            # a bare string would turn into a set of single characters
            raise ValueError("validators must be a collection of organization ids, not a string")
        self._validators: FrozenSet[str] = frozenset(validators)

    def __repr__(self) -> str:
        # secrets stay out of reprs and logs
        return f"StaticDirectory(validators={sorted(self._validators)}, keys={sorted(self._keys)})"

    def is_validator(self, org_id: str) -> bool:
        return org_id in self._validators

    def get_key(self, org_id: str) -> Optional[str]:
        return self._keys.get(org_id)

    def all_org_ids(self) -> Set[str]:
        return set(self._validators) | {k for k in self._keys if k not in RESERVED_IDS}

    @classmethod
    def from_file(cls, path: Path) -> "StaticDirectory":
        """
        Load from JSON:
            {"validators": ["Hospital", "Lab"], "keys": {"shared": "...", "Hospital": "..."}}
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Directory file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Invalid directory file: {path}")

        keys = data.get("keys", {})
        if not isinstance(keys, dict) or not all(isinstance(v, str) for v in keys.values()):
            raise ValueError(f"Invalid directory file {path}: 'keys' must map organization ids to strings")

        validators = data.get("validators")
        if validators is not None and (
            not isinstance(validators, list) or not all(isinstance(v, str) for v in validators)
        ):
            raise ValueError(f"Invalid directory file {path}: 'validators' must be a list of strings")

        directory = cls(keys=keys, validators=validators)
        logger.debug("[carechain] Loaded directory from %s: %r", path, directory)
        return directory

    @classmethod
    def from_env(
        cls,
        prefix: str = "CARECHAIN_KEY_",
        environ: Optional[Mapping[str, str]] = None,
        validators_var: Optional[str] = None,
    ) -> "StaticDirectory":
        """
        <PREFIX><ORG>=secret for each organization (CARECHAIN_KEY_shared for the shared key).
        The validator set comes from a comma separated variable in the same namespace:
        CARECHAIN_KEY_ → CARECHAIN_VALIDATORS, FOO_ → FOO_VALIDATORS.
        """
        env = os.environ if environ is None else environ
        if validators_var is None:
            namespace = prefix[:-len("KEY_")] if prefix.endswith("KEY_") else prefix
            validators_var = namespace + "VALIDATORS"

        keys = {
            name[len(prefix):]: value
            for name, value in env.items()
            if name.startswith(prefix) and len(name) > len(prefix) and name != validators_var
        }
        raw_validators = env.get(validators_var)
        validators = None
        if raw_validators:
            validators = [v.strip() for v in raw_validators.split(",") if v.strip()]
        return cls(keys=keys, validators=validators)


def demo_directory(shared_secret: Optional[str] = None) -> StaticDirectory:
    """Hospital, Lab and Insurance as validators, all on one consortium key."""
    secret = shared_secret or os.environ.get("CARECHAIN_SHARED_KEY") or DEMO_SHARED_SECRET
    keys = {org: secret for org in DEMO_ORGS}
    keys[SHARED_KEY_ID] = secret
    keys[SYSTEM_ORG] = secret
    return StaticDirectory(keys=keys, validators=DEMO_ORGS)
