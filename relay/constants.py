import re

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".heic", ".heif")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".webm", ".m4v", ".3gp")
AUDIO_EXTENSIONS = (".mp3", ".m4a", ".aac", ".wav", ".ogg", ".opus")
DOCUMENT_EXTENSIONS = (".pdf", ".doc", ".docx", ".txt", ".xls", ".xlsx", ".ppt", ".pptx", ".zip", ".rar")

ALLOWED_EXTENSIONS = IMAGE_EXTENSIONS + VIDEO_EXTENSIONS + AUDIO_EXTENSIONS + DOCUMENT_EXTENSIONS

ALLOWED_MIME_PREFIXES = ("image/", "video/", "audio/")
DOCUMENT_MIME_MARKERS = ("pdf", "document", "text", "zip", "spreadsheet", "presentation")

REJECTED_TYPE_MESSAGE = "Only images, videos, audio, and documents allowed!"

# Served content types; anything else goes out as DEFAULT_CONTENT_TYPE
CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".m4a": "audio/mp4",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".ogg": "audio/ogg",
    ".opus": "audio/ogg",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

DEFAULT_CHAT_ID = "general"
DEFAULT_USER_ID = "unknown"

ROUTING_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

# Attempts at finding a free filename before giving up
MAX_NAME_ATTEMPTS = 10

# Room for multipart boundaries and form fields on top of the file itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024
