"""Question repositories: question files on disk kept in step with a site."""

from .manifest import Manifest, ManifestContext, ManifestEntry, load_manifest, manifest_path, save_manifest
from .sync import create_course_repo, create_repo, export_quiz, export_repo, import_quiz, import_repo, tidy_manifest

__all__ = [
    "Manifest",
    "ManifestContext",
    "ManifestEntry",
    "create_course_repo",
    "create_repo",
    "export_quiz",
    "export_repo",
    "import_quiz",
    "import_repo",
    "load_manifest",
    "manifest_path",
    "save_manifest",
    "tidy_manifest",
]
