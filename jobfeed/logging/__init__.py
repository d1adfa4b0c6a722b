"""Structured logging helpers shared by every jobfeed component."""

import logging
from typing import Optional, Union


class ComponentLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that stamps a ``component`` field onto every record.

    Fields passed through ``extra=`` at the call site win over the adapter's
    defaults, so a call can still override ``component`` when it needs to.
    """

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str, component: Optional[str] = None
) -> Union[logging.Logger, ComponentLoggerAdapter]:
    """Return a module logger, optionally bound to a component name.

    Args:
        name: Logger name (normally ``__name__``)
        component: Component label injected into each record (e.g. "reconcile")

    Example:
        >>> logger = get_logger(__name__, component="reconcile")
        >>> logger.info("Cycle started", extra={"event": "reconcile.cycle.started"})
    """
    logger = logging.getLogger(name)
    if component:
        return ComponentLoggerAdapter(logger, {"component": component})
    return logger
