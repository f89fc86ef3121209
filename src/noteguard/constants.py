"""
Static configuration data for noteguard.

These values are supplied to the evaluator as data. They are not computed
from the subject under inspection.
"""

# MIME types that browsers can render inline without sniffing risk.
# Any attached file outside this list makes `hasBrowserInsafe` match.
FILE_TYPE_BROWSERSAFE: frozenset[str] = frozenset(
    {
        # Images
        "image/png",
        "image/gif",
        "image/jpeg",
        "image/webp",
        "image/avif",
        "image/apng",
        "image/bmp",
        "image/tiff",
        "image/x-icon",
        # OggS
        "audio/opus",
        "video/ogg",
        "audio/ogg",
        "application/ogg",
        # ISO/IEC base media file format
        "video/quicktime",
        "video/mp4",
        "audio/mp4",
        "video/x-m4v",
        "audio/x-m4a",
        "video/3gpp",
        "video/3gpp2",
        "video/mpeg",
        "audio/mpeg",
        "video/webm",
        "audio/webm",
        "audio/aac",
        "audio/flac",
        "audio/wav",
        # Legacy aliases
        "audio/x-flac",
        "audio/vnd.wave",
    }
)

# Blurhashes are decoded to a BLURHASH_GRID x BLURHASH_GRID pixel grid
# before being compared.
BLURHASH_GRID = 5
