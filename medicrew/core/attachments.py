import base64
import mimetypes
from dataclasses import dataclass
from typing import Iterable, Optional

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")
IMAGE_EXTENSIONS = ["jpg", "jpeg", "png", "webp"]
CLINICAL_FILE_TYPES = IMAGE_TYPES + ("application/pdf",)
CLINICAL_FILE_EXTENSIONS = IMAGE_EXTENSIONS + ["pdf"]
LICENSE_EXTENSIONS = ["pdf", "jpg", "jpeg", "png"]
AUDIO_MIME_TYPE = "audio/mp3"


class UploadTooLarge(ValueError):
    pass


class UnsupportedUpload(ValueError):
    pass


@dataclass
class Attachment:
    name: str
    mime_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def display_size(self) -> str:
        return f"{self.size / 1024 / 1024:.2f} MB"

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{base64.b64encode(self.data).decode('ascii')}"

    @classmethod
    def from_data_url(cls, url: str, name: str = "upload") -> "Attachment":
        """Parse "data:<mime>;base64,<payload>"."""
        if not url.startswith("data:") or "," not in url:
            raise UnsupportedUpload("Not a data URL.")
        header, payload = url.split(",", 1)
        mime_type = header[5:].split(";")[0] or "application/octet-stream"
        return cls(name=name, mime_type=mime_type, data=base64.b64decode(payload))

    @classmethod
    def from_upload(
        cls,
        uploaded_file,
        max_bytes: int,
        allowed: Optional[Iterable[str]] = None,
    ) -> "Attachment":
        """Build from a Streamlit UploadedFile (anything with .name, .type, .getvalue())."""
        data = uploaded_file.getvalue()
        if len(data) > max_bytes:
            limit_mb = max_bytes / 1024 / 1024
            raise UploadTooLarge(f"{uploaded_file.name} is too large. Max {limit_mb:g}MB.")

        mime_type = getattr(uploaded_file, "type", None) or mimetypes.guess_type(uploaded_file.name)[0] or ""
        if allowed is not None and mime_type not in set(allowed):
            raise UnsupportedUpload(f"{uploaded_file.name}: unsupported file type {mime_type or 'unknown'}.")

        safe_name = uploaded_file.name.replace("/", "_").replace("\\", "_")
        return cls(name=safe_name, mime_type=mime_type, data=data)


def audio_attachment(recording, max_bytes: int) -> Optional[Attachment]:
    """Voice note from st.audio_input; None when nothing was recorded."""
    if recording is None:
        return None
    att = Attachment.from_upload(recording, max_bytes)
    if not att.mime_type.startswith("audio/"):
        att.mime_type = AUDIO_MIME_TYPE
    return att
