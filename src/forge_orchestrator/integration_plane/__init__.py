"""Integration plane: packaging of verified artifacts into deliverable archives."""

from forge_orchestrator.integration_plane.packaging import Packager, ZipPackager

__all__ = ["Packager", "ZipPackager"]
