"""Full-record update payloads."""

import copy
from collections.abc import Iterable
from typing import Any

__all__ = ["ItemRecordBuilder"]


class ItemRecordBuilder:
    """Builds the payload for a full-record item update with a tag delta.

    The item update endpoint replaces the whole record, so every field read
    from the server is carried forward unchanged and only ``Tags`` differs.
    Fields the endpoint rejects as null are filled with empty values.
    """

    # Fields that must be present (and non-null) in an update payload
    REQUIRED_DEFAULTS: dict[str, Any] = {
        "OriginalTitle": "",
        "ForcedSortName": "",
        "Overview": "",
        "Status": "",
        "DisplayOrder": "",
        "AirTime": "",
        "AspectRatio": "",
        "Video3DFormat": "",
        "OfficialRating": "",
        "CustomRating": "",
        "PreferredMetadataLanguage": "",
        "PreferredMetadataCountryCode": "",
        "Album": "",
        "AlbumArtists": [],
        "ArtistItems": [],
        "AirDays": [],
        "Genres": [],
        "Studios": [],
        "People": [],
        "Taglines": [],
        "LockedFields": [],
        "ProviderIds": {},
        "LockData": False,
    }

    def __init__(self, record: dict[str, Any]) -> None:
        if not record.get("Id"):
            raise ValueError("Item record has no Id")
        self.record = record

    @property
    def item_id(self) -> str:
        return self.record["Id"]

    @property
    def tags(self) -> list[str]:
        return list(self.record.get("Tags") or [])

    def apply_delta(
        self, add: Iterable[str] = (), remove: Iterable[str] = ()
    ) -> list[str]:
        """Return the item's tags after adding ``add`` and removing ``remove``.

        Existing order is preserved and additions are appended; a tag present in
        both ``add`` and ``remove`` ends up removed.
        """
        remove = set(remove)
        tags = [tag for tag in self.tags if tag not in remove]
        for tag in add:
            if tag not in remove and tag not in tags:
                tags.append(tag)
        return tags

    def is_noop(self, add: Iterable[str] = (), remove: Iterable[str] = ()) -> bool:
        """Whether applying the delta would leave the tags unchanged."""
        return self.apply_delta(add, remove) == self.tags

    def build(
        self, add: Iterable[str] = (), remove: Iterable[str] = ()
    ) -> dict[str, Any]:
        """Build the full update payload with the tag delta applied.

        The source record is not modified.
        """
        payload = copy.deepcopy(self.record)
        for field, default in self.REQUIRED_DEFAULTS.items():
            if payload.get(field) is None:
                payload[field] = copy.copy(default)
        payload["Tags"] = self.apply_delta(add, remove)
        return payload

    @classmethod
    def with_marker(
        cls, record: dict[str, Any], marker: str, present: bool
    ) -> dict[str, Any] | None:
        """Build a payload that adds or removes ``marker``.

        Returns:
            dict[str, Any] | None: The payload, or None when the record already
                has the requested marker state.
        """
        builder = cls(record)
        delta = {"add": (marker,)} if present else {"remove": (marker,)}
        if builder.is_noop(**delta):
            return None
        return builder.build(**delta)
