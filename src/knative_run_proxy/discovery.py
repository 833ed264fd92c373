"""
Static discovery documents and the catch-all handler.

kubectl asks /api and /apis before any resource call. The backend has
no equivalent, so the proxy answers with fixed documents describing the
Knative groups Cloud Run serves.
"""

import logging
from typing import Any, Dict, List

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

logger = logging.getLogger(__name__)

API_GROUPS = [
    "autoscaling.internal.knative.dev",
    "caching.internal.knative.dev",
    "domains.cloudrun.com",
    "networking.internal.knative.dev",
    "serving.knative.dev",
]
API_GROUP_VERSION = "v1alpha1"


def api_group(name: str, version: str = API_GROUP_VERSION) -> Dict[str, Any]:
    """One APIGroup entry with a single, preferred version."""
    group_version = {"groupVersion": f"{name}/{version}", "version": version}
    return {
        "name": name,
        "versions": [group_version],
        "preferredVersion": dict(group_version),
    }


def api_group_list(groups: List[str] = API_GROUPS) -> Dict[str, Any]:
    return {
        "kind": "APIGroupList",
        "apiVersion": "v1",
        "groups": [api_group(name) for name in groups],
    }


async def api_handler(request: Request) -> JSONResponse:
    """Core group discovery; nothing is served from the legacy group."""
    return JSONResponse({})


async def apis_handler(request: Request) -> JSONResponse:
    return JSONResponse(api_group_list())


async def fallback_handler(request: Request) -> Response:
    """Anything not routed: 404 with no body."""
    logger.info(f"Request method={request.method} path={request.url.path}")
    return Response(status_code=404)
