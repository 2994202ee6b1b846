from .errors import GenerationError
from .poller import ContentPoller, PollerConfig, PollerRegistry, load_poller_config
from .status import COMPLETED, FAILED, GENERATING, QUEUED, advance, has_pending, merge_snapshot

__all__ = [
    "COMPLETED",
    "FAILED",
    "GENERATING",
    "QUEUED",
    "ContentPoller",
    "GenerationError",
    "PollerConfig",
    "PollerRegistry",
    "advance",
    "has_pending",
    "load_poller_config",
    "merge_snapshot",
]
