from .clusters import CLUSTERS, DEFAULT_CLUSTER, Cluster, get_cluster_url, websocket_url
from .settings import EngineSettings, OverrideRecord, load_settings

__all__ = [
    "CLUSTERS",
    "Cluster",
    "DEFAULT_CLUSTER",
    "EngineSettings",
    "OverrideRecord",
    "get_cluster_url",
    "load_settings",
    "websocket_url",
]
