"""In-process publish/subscribe fan-out for real-time streams."""

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Event = dict[str, Any]
Handler = Callable[[Event], None]


class TopicKind(str, Enum):
    """Topic namespaces. Keys from different namespaces never collide."""

    ORGANIZATION = "organization"
    CONTACT = "contact"


@dataclass(eq=False)
class Subscription:
    """A single handler registration on one topic."""

    kind: TopicKind
    topic_id: str
    handler: Handler
    active: bool = field(default=True)


class EventBus:
    """Topic-keyed registry of subscriber callbacks.

    One instance is built per process and handed to every component that
    publishes or subscribes. All access happens on the event loop thread, so
    the registry needs no lock.
    """

    def __init__(self) -> None:
        self._topics: dict[tuple[TopicKind, str], list[Subscription]] = {}

    def subscribe(self, kind: TopicKind, topic_id: str, handler: Handler) -> Callable[[], None]:
        """Register a handler on a topic.

        Args:
            kind: Topic namespace
            topic_id: Organization or contact id
            handler: Callable receiving each published event

        Returns:
            Function removing exactly this registration (safe to call twice)
        """
        key = (kind, topic_id)
        subscription = Subscription(kind=kind, topic_id=topic_id, handler=handler)
        self._topics.setdefault(key, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            subscribers = self._topics.get(key)
            if subscribers is None:
                return
            subscribers.remove(subscription)
            if not subscribers:
                # Drop empty topics so idle ids hold no memory
                del self._topics[key]

        return unsubscribe

    def publish(self, kind: TopicKind, topic_id: str, event: Event) -> int:
        """Deliver an event to every handler on a topic, in registration order.

        Each handler receives its own copy of the event, and a failing handler
        does not stop delivery to the rest.

        Args:
            kind: Topic namespace
            topic_id: Organization or contact id
            event: JSON-serializable event payload

        Returns:
            Number of handlers that received the event
        """
        subscribers = self._topics.get((kind, topic_id))
        if not subscribers:
            return 0

        delivered = 0
        # Snapshot: handlers may unsubscribe while we iterate
        for subscription in list(subscribers):
            if not subscription.active:
                continue
            try:
                subscription.handler(copy.deepcopy(event))
                delivered += 1
            except Exception:
                logger.exception(
                    "Event handler failed",
                    extra={"topic_kind": kind.value, "topic_id": topic_id, "event_type": event.get("type")},
                )
        return delivered

    def publish_to_organization(self, organization_id: str, event: Event) -> int:
        """Publish to the agent-dashboard topic of an organization."""
        return self.publish(TopicKind.ORGANIZATION, organization_id, event)

    def publish_to_contact(self, contact_id: str, event: Event) -> int:
        """Publish to the widget-visitor topic of a contact."""
        return self.publish(TopicKind.CONTACT, contact_id, event)

    def subscriber_count(self, kind: TopicKind, topic_id: str) -> int:
        """Number of live subscriptions on a topic."""
        return len(self._topics.get((kind, topic_id), ()))

    def has_topic(self, kind: TopicKind, topic_id: str) -> bool:
        """Whether a topic currently has a registration set at all."""
        return (kind, topic_id) in self._topics
