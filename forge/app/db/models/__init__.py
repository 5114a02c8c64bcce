"""ORM models for database tables."""

from .context_preference import ContextPreference
from .manifest_submission import ManifestSubmission
from .preview_manifest import PreviewManifest
from .team import Team, TeamMember
from .user import User

__all__ = [
    "User",
    "Team",
    "TeamMember",
    "PreviewManifest",
    "ManifestSubmission",
    "ContextPreference",
]
