from app.modules.stremio.client import (
    AddonDescriptor,
    RemoteIdentity,
    RemoteSession,
    StremioClient,
    get_stremio_client,
    stremio_client,
)

__all__ = [
    "AddonDescriptor",
    "RemoteIdentity",
    "RemoteSession",
    "StremioClient",
    "get_stremio_client",
    "stremio_client",
]
