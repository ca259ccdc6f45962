"""Collection mutation webhook endpoint."""

from typing import Any

from fastapi.param_functions import Depends
from fastapi.routing import APIRouter
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from starlette.requests import Request

from src import log
from src.exceptions import InvalidMutationEventError
from src.models.events import CollectionMutation, MutationAction
from src.models.media import MediaKind
from src.web.state import get_app_state

__all__ = ["CollectionWebhook", "router"]

router = APIRouter()

# HTTP method of the intercepted collection request -> mutation action
_METHOD_ACTIONS = {
    "POST": MutationAction.ADDED,
    "DELETE": MutationAction.REMOVED,
}


class CollectionWebhook(BaseModel):
    """Collection mutation payload.

    Accepts either an explicit ``action`` or the HTTP ``method`` of the
    collection request that was observed (``POST`` adds items, ``DELETE``
    removes them). ``item_ids`` may be a list or a comma separated string.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    collection_id: str | None = Field(default=None, alias="CollectionId")
    action: MutationAction | None = None
    method: str | None = None
    kind: MediaKind | None = None
    item_type: str | None = Field(default=None, alias="ItemType")
    item_ids: list[str] = Field(default_factory=list, alias="Ids")

    @field_validator("item_ids", mode="before")
    @classmethod
    def split_ids(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    def to_mutation(self) -> CollectionMutation:
        """Convert the payload to a watcher event.

        Raises:
            InvalidMutationEventError: If the payload cannot describe a mutation.
        """
        action = self.action
        if action is None and self.method:
            action = _METHOD_ACTIONS.get(self.method.upper(), MutationAction.CHANGED)
        if action is None:
            action = MutationAction.CHANGED
        if action != MutationAction.CHANGED and not self.item_ids:
            raise InvalidMutationEventError(f"'{action}' events require item ids")
        if action == MutationAction.CHANGED and not self.collection_id:
            raise InvalidMutationEventError("Missing collection id")

        kind = self.kind
        if kind is None and self.item_type:
            kind = MediaKind.from_item_type(self.item_type)

        return CollectionMutation(
            collection_id=self.collection_id,
            action=action,
            kind=kind,
            item_ids=tuple(self.item_ids),
        )


async def parse_webhook_request(request: Request) -> CollectionWebhook:
    """Parse the JSON webhook body.

    Raises:
        InvalidMutationEventError: If the request body or payload is invalid.
    """
    try:
        data = await request.json()
    except Exception as e:
        raise InvalidMutationEventError(f"Invalid JSON body: {e}") from e
    try:
        return CollectionWebhook.model_validate(data)
    except ValidationError as e:
        raise InvalidMutationEventError(f"Invalid payload structure: {e}") from e


class WebhookResponse(BaseModel):
    ok: bool = True
    action: MutationAction
    queued_items: int = 0


@router.post("", response_model=WebhookResponse)
async def collections_webhook(
    payload: CollectionWebhook = Depends(parse_webhook_request),
) -> WebhookResponse:
    """Receive a collection mutation and queue a debounced reconciliation.

    Raises:
        ServiceNotInitializedError: If the service is not running.
        InvalidMutationEventError: If the payload is invalid.
    """
    service = get_app_state().require_service()
    event = payload.to_mutation()
    log.debug(
        f"Web: Collection webhook {event.action} for $$'{event.collection_id}'$$"
    )
    service.observe(event)
    return WebhookResponse(action=event.action, queued_items=len(event.item_ids))
