"""CollectionMarker exception classes."""


class CollectionMarkerError(Exception):
    """Base class for all CollectionMarker exceptions."""

    # Default HTTP status for API responses
    status_code: int = 500


# Configuration errors
class ConfigError(CollectionMarkerError):
    """Base class for configuration-related errors."""

    status_code = 500


class DataPathError(ConfigError, ValueError):
    """The configured data directory path is invalid for the requested operation."""

    status_code = 400


# Media/model errors
class MediaKindError(CollectionMarkerError):
    """Base class for media kind related errors."""

    status_code = 400


class UnsupportedMediaKindError(MediaKindError, ValueError):
    """A media kind or Jellyfin item type is not one of the supported kinds."""

    status_code = 400


# Library (Jellyfin) errors
class LibraryError(CollectionMarkerError):
    """Base class for failures talking to the media library."""

    status_code = 502


class FetchError(LibraryError):
    """A library query (items, collections, members) failed outright."""

    status_code = 502


class PartialFetchError(FetchError):
    """The member list of a single collection could not be fetched."""

    status_code = 502

    def __init__(self, collection_id: str, message: str | None = None) -> None:
        """Remember which collection failed to load.

        Args:
            collection_id (str): The collection whose members were not fetched.
            message (str | None): Optional error detail.
        """
        self.collection_id = collection_id
        super().__init__(message or f"Failed to fetch members of '{collection_id}'")


class UpdateError(LibraryError):
    """A single item's metadata update was rejected or failed in transit."""

    status_code = 502

    def __init__(self, item_id: str, message: str | None = None) -> None:
        """Remember which item failed to update.

        Args:
            item_id (str): The library item that could not be updated.
            message (str | None): Optional error detail.
        """
        self.item_id = item_id
        super().__init__(message or f"Failed to update item '{item_id}'")


class LibraryAuthError(LibraryError):
    """The library rejected the configured credentials."""

    status_code = 401


# Authorization errors
class NotAuthorizedError(CollectionMarkerError, PermissionError):
    """The session is not privileged enough to modify library metadata."""

    status_code = 403


# Service / scheduler errors
class ServiceError(CollectionMarkerError):
    """Base class for orchestration failures."""

    status_code = 500


class ServiceNotInitializedError(ServiceError, RuntimeError):
    """A service instance is required but not available/initialized."""

    status_code = 503


# Webhook errors
class WebhookError(CollectionMarkerError):
    """Base class for inbound webhook failures."""

    status_code = 400


class InvalidMutationEventError(WebhookError, ValueError):
    """A collection mutation payload is missing required fields or malformed."""

    status_code = 400
