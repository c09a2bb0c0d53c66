"""Build version information."""

import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field

__version__ = "1.0.0"

COMMIT_ENV = "BINDPLANE_COMMIT"
TAG_ENV = "BINDPLANE_TAG"


class Version(BaseModel):
    """Commit and tag the server was built from."""

    commit: str = Field("unknown", description="Source commit")
    tag: str = Field("unknown", description="Release tag")

    def to_dict(self) -> Dict[str, str]:
        return self.model_dump()


def get_version(environ: Optional[Mapping[str, str]] = None) -> Version:
    """Read the build version from the environment, falling back to the package version."""
    environ = os.environ if environ is None else environ
    return Version(
        commit=environ.get(COMMIT_ENV) or "unknown",
        tag=environ.get(TAG_ENV) or f"v{__version__}",
    )
