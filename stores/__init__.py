from .content import ContentStore
from .influencers import Influencer, InfluencerStore
from .webhooks import WebhookStore

__all__ = ["ContentStore", "Influencer", "InfluencerStore", "WebhookStore"]
