"""Security utilities for storage-key validation and token comparison."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import hmac
import re
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from cloudplayer.logging import get_logger

logger = get_logger(__name__)


class SecurityValidator:
    """Security validation utilities."""

    # Dangerous name patterns
    DANGEROUS_PATTERNS = [
        r"(^|/)\.\.(/|$)",  # Path traversal
        r"//+",  # Multiple slashes
        r"^~",  # Home directory expansion
        r"\\",  # Windows separators
        r"\x00",  # Null bytes
    ]

    AUDIO_EXTENSIONS = {
        ".mp3",
        ".m4a",
        ".aac",
        ".ogg",
        ".opus",
        ".flac",
        ".wav",
    }

    IMAGE_EXTENSIONS = {
        ".jpg",
        ".jpeg",
        ".png",
        ".webp",
        ".gif",
    }

    @staticmethod
    def validate_storage_name(name: str, base_path: Path) -> Optional[Path]:
        """
        Map a requested object name onto a file below base_path.

        Args:
            name: Name from the URL (already percent-decoded); may contain
                forward slashes for sub folders
            base_path: Directory the name must stay within

        Returns:
            Resolved Path if the name is safe, None otherwise. The file
            itself may not exist.
        """
        if not name or name.startswith("/"):
            logger.warning("Security: Empty or absolute storage name: %r", name)
            return None

        for pattern in SecurityValidator.DANGEROUS_PATTERNS:
            if re.search(pattern, name):
                logger.warning("Security: Dangerous pattern detected in name: %r", name)
                return None

        try:
            base = Path(base_path).resolve()
            path = (base / name).resolve()
            # Symlinks must not lead out of the storage root either
            path.relative_to(base)
        except (OSError, ValueError) as e:
            logger.warning("Security: Name outside storage root: %r (%s)", name, e)
            return None

        return path

    @staticmethod
    def validate_file_extension(name: str, allowed: set) -> bool:
        """
        Validate file extension against an allowed set.

        Args:
            name: File name to validate
            allowed: Lower-case extensions including the dot

        Returns:
            True if extension is allowed, False otherwise
        """
        ext = Path(name).suffix.lower()
        if ext not in allowed:
            logger.warning("Security: Disallowed file extension: %s", ext)
            return False
        return True

    @staticmethod
    def tokens_match(provided: Optional[str], expected: str) -> bool:
        """Constant-time token comparison; an empty expected token never matches."""
        if not provided or not expected:
            return False
        return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
