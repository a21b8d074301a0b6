"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

REST transport and resource helpers for the fulfillment backend.
"""

from .resources import (
    CLUSTERS_PATH,
    HOST_CLASS_CATALOG_PATH,
    HOST_CLASSES_PATH,
    HOSTS_PATH,
    FulfillmentAPI,
    catalog_name,
    cluster_host_class_ids,
    host_class_id,
)
from .transport import FulfillmentClient, HTTPResponse, Opener, http_open

__all__ = [
    "FulfillmentAPI",
    "FulfillmentClient",
    "HTTPResponse",
    "Opener",
    "http_open",
    "HOSTS_PATH",
    "HOST_CLASSES_PATH",
    "HOST_CLASS_CATALOG_PATH",
    "CLUSTERS_PATH",
    "host_class_id",
    "cluster_host_class_ids",
    "catalog_name",
]
