"""Collection membership index."""

from src import log
from src.core.cache import CacheKey, CacheStore
from src.core.jellyfin import LibraryClient
from src.exceptions import PartialFetchError
from src.models.media import MediaKind, MembershipSet

__all__ = ["MembershipIndex"]


class MembershipIndex:
    """Builds and caches the set of items that belong to at least one collection.

    The union is stored per media kind in the cache store under
    `CacheKey.membership` with the TTL configured for that kind.
    """

    def __init__(
        self,
        client: LibraryClient,
        cache: CacheStore,
        ttls: dict[MediaKind, float],
    ) -> None:
        """Initialize the membership index.

        Args:
            client (LibraryClient): Library used to list collections and members.
            cache (CacheStore): Cache holding the computed membership sets.
            ttls (dict[MediaKind, float]): Membership cache lifetime per kind.
        """
        self.client = client
        self.cache = cache
        self.ttls = ttls

    async def get_membership(
        self, kind: MediaKind, force_refresh: bool = False
    ) -> MembershipSet:
        """Return the ids of all items of ``kind`` that are in a collection.

        Args:
            kind (MediaKind): Media kind to compute membership for.
            force_refresh (bool): Ignore a cached value and query the library.

        Returns:
            MembershipSet: The union of collection members.

        Raises:
            FetchError: If the collection list itself cannot be fetched.
        """
        key = CacheKey.membership(kind)
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                log.debug(f"Using cached {kind} membership ({len(cached)} items)")
                return MembershipSet.from_ids(kind, cached)

        collections = await self.client.list_collections(kind)
        log.debug(f"Found {len(collections)} collections, fetching {kind} members")

        member_ids: set[str] = set()
        skipped: list[str] = []
        # One collection at a time
        for collection in collections:
            try:
                members = await self.client.list_collection_members(
                    collection.id, kind
                )
            except PartialFetchError as e:
                log.warning(
                    f"Skipping collection $$'{collection.name or collection.id}'$$: {e}"
                )
                skipped.append(collection.id)
                continue
            member_ids.update(member.id for member in members)

        membership = MembershipSet.from_ids(
            kind,
            member_ids,
            collection_count=len(collections),
            skipped_collections=skipped,
        )
        self.cache.set(key, sorted(membership.item_ids), self.ttls[kind])
        log.info(
            f"Indexed {len(membership)} {kind} items across "
            f"{len(collections)} collections"
            + (f" ({len(skipped)} skipped)" if skipped else "")
        )
        return membership

    def invalidate(self, kind: MediaKind | None = None) -> None:
        """Drop the cached membership of ``kind``, or of every kind when None."""
        kinds = [kind] if kind is not None else list(MediaKind)
        self.cache.invalidate_all(CacheKey.membership(k) for k in kinds)
