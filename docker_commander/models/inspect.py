"""Typed view of `container inspect` output.

Only the network addressing fields are modelled; everything else in the
engine payload is ignored.
"""

import json
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import MalformedOutputError


class NetworkEndpoint(BaseModel):
    """One entry of `NetworkSettings.Networks`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ip_address: Optional[str] = Field(default=None, alias="IPAddress")


class NetworkSettings(BaseModel):
    """The `NetworkSettings` block of an inspected container."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    ip_address: Optional[str] = Field(default=None, alias="IPAddress")
    networks: Optional[Dict[str, NetworkEndpoint]] = Field(
        default=None, alias="Networks"
    )


class ContainerInspect(BaseModel):
    """One element of the array printed by `container inspect`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: Optional[str] = Field(default=None, alias="Name")
    network_settings: Optional[NetworkSettings] = Field(
        default=None, alias="NetworkSettings"
    )

    @property
    def ip_address(self) -> Optional[str]:
        """Container IP: the top-level address, else the first non-empty network address."""
        settings = self.network_settings
        if settings is None:
            return None

        ip = (settings.ip_address or "").strip()
        if ip:
            return ip

        for endpoint in (settings.networks or {}).values():
            candidate = (endpoint.ip_address or "").strip()
            if candidate:
                return candidate
        return None


def parse_container_inspect(text: str) -> List[ContainerInspect]:
    """Parse `container inspect` output into typed entries.

    Raises:
        MalformedOutputError: If the text is not a JSON array of objects.
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise MalformedOutputError(f"Inspect output is not valid JSON: {e}")

    if not isinstance(payload, list):
        raise MalformedOutputError("Inspect output is not a JSON array")

    entries = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        try:
            entries.append(ContainerInspect.model_validate(item))
        except ValidationError as e:
            raise MalformedOutputError(f"Unexpected inspect entry: {e}")
    return entries
