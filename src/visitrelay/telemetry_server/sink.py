"""Analytics sink dependency and guarded sink calls.

Delivery is the sink's concern: every call made from a route goes through
``_guard``, so a sink that raises is logged and the response proceeds.
"""

import contextlib
import logging
from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends, Request

from visitrelay.telemetry.client import Sink as SinkProtocol
from visitrelay.telemetry.schema import OutboundEvent

logger = logging.getLogger(__name__)


def get_sink(request: Request) -> SinkProtocol:
    """Get the analytics sink from app state."""
    return request.app.state.sink


Sink = Annotated[SinkProtocol, Depends(get_sink)]


@contextlib.contextmanager
def _guard(action: str, *args: object) -> Iterator[None]:
    try:
        yield
    except Exception:
        logger.exception(action + " failed", *args)


def dispatch(sink: SinkProtocol, event: OutboundEvent) -> None:
    """Hand a composed event to the sink."""
    with _guard("Dispatch of %s to analytics sink", event.event_name):
        if event.event_name == "$identify":
            sink.identify(event.distinct_id, event.properties or None)
        else:
            sink.capture(event.distinct_id, event.event_name, event.properties, event.groups)


def alias(sink: SinkProtocol, distinct_id: str, anonymous_id: str) -> None:
    """Merge an anonymous visitor into ``distinct_id``."""
    with _guard("Alias of %s to %s", anonymous_id, distinct_id):
        sink.alias(distinct_id, anonymous_id)


def group_identify(sink: SinkProtocol, distinct_id: str, groups: list[tuple[str, str]]) -> None:
    """Register ``distinct_id`` with each ``(group_type, group_key)``.

    Groups are sent independently; one failing does not skip the rest.
    """
    for group_type, group_key in groups:
        with _guard("Group identify %s=%s for %s", group_type, group_key, distinct_id):
            sink.group_identify(distinct_id, group_type, group_key)
