"""
Attachment store — turns submitted descriptors into opaque references.

A descriptor is ``{name, type, contentType, url}``; all four are required
and no bytes ever pass through the engine.  The returned reference is a
frozen record; the workflow only carries it into history.
"""

from __future__ import annotations

from dataclasses import dataclass

from alms.core.exceptions import ValidationError

_REQUIRED = ("name", "type", "contentType", "url")


@dataclass(frozen=True)
class AttachmentRef:
    name: str
    type: str
    content_type: str
    url: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "contentType": self.content_type,
            "url": self.url,
        }


class AttachmentStore:
    """Validates descriptors; storage of the documents themselves lives elsewhere."""

    def store(self, descriptor) -> AttachmentRef:
        if not isinstance(descriptor, dict):
            raise ValidationError("Attachment must be an object", {"attachment": descriptor})
        missing = [k for k in _REQUIRED if not str(descriptor.get(k) or "").strip()]
        if missing:
            raise ValidationError(
                "Attachment descriptor incomplete",
                {"missing": missing, "attachment": descriptor.get("name")},
            )
        return AttachmentRef(
            name=str(descriptor["name"]).strip(),
            type=str(descriptor["type"]).strip().upper(),
            content_type=str(descriptor["contentType"]).strip(),
            url=str(descriptor["url"]).strip(),
        )

    def store_all(self, descriptors) -> list[AttachmentRef]:
        return [self.store(d) for d in descriptors or ()]
