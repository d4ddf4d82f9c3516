"""Rules for turning a draft, attachments and voice transcripts into message text."""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

ALLOWED_CONTENT_TYPES = (
    "text/plain",
    "text/markdown",
    "text/csv",
    "application/json",
    "application/pdf",
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
)

MAX_ATTACHMENT_SIZE = 10 * 1024 * 1024  # 10MB


@dataclass(frozen=True)
class Attachment:
    """A file picked for sending. Only its name travels with the message."""

    name: str
    content_type: str
    size: int


@dataclass(frozen=True)
class Notification:
    """User-facing toast."""

    title: str
    description: str
    variant: str = "default"


def compose_message(text: str, attachments: Sequence[Attachment] = ()) -> Optional[str]:
    """Build the outgoing content, or None when there is nothing to send."""
    content = text.strip()
    if not content and not attachments:
        return None
    if attachments:
        names = ", ".join(a.name for a in attachments)
        content += f"\n\n[Attached files: {names}]"
    return content


def append_transcript(draft: str, transcript: str) -> str:
    """Append a voice transcript to the draft, space-separated."""
    transcript = transcript.strip()
    if not transcript:
        return draft
    return draft + (" " if draft else "") + transcript


def validate_attachments(
    attachments: Sequence[Attachment],
) -> Tuple[List[Attachment], List[Notification]]:
    """Split attachments into accepted files and rejection notices."""
    valid: List[Attachment] = []
    rejected: List[Notification] = []
    for attachment in attachments:
        if attachment.content_type not in ALLOWED_CONTENT_TYPES:
            rejected.append(Notification(
                title="Invalid file type",
                description=f"{attachment.name} is not a supported file type",
                variant="destructive",
            ))
            continue
        if attachment.size > MAX_ATTACHMENT_SIZE:
            rejected.append(Notification(
                title="File too large",
                description=f"{attachment.name} is larger than 10MB",
                variant="destructive",
            ))
            continue
        valid.append(attachment)
    return valid, rejected
