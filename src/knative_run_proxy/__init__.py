"""
knative-run proxy - a local Kubernetes API endpoint backed by Cloud Run.

kubectl talks to the proxy over TLS on localhost as if it were a cluster
API server. Namespaced resource calls are forwarded to the Cloud Run
API, schema calls to a Knative cluster, and DELETE responses are
rewritten into the Status envelope kubectl expects.

Architecture:
    ┌──────────┐     ┌─────────────────────┐     ┌──────────────────────┐
    │ kubectl  │────▶│  knative-run-proxy  │────▶│  Cloud Run API       │
    │          │◀────│  (localhost:6443)   │◀────│  (namespaced calls)  │
    └──────────┘     └─────────────────────┘     └──────────────────────┘
                               │
                               ▼
                     ┌─────────────────────┐
                     │  Knative cluster    │
                     │  (openapi/swagger)  │
                     └─────────────────────┘
"""

from knative_run_proxy.config import ProxyConfig
from knative_run_proxy.forwarder import RequestForwarder
from knative_run_proxy.identity import IdentityError, TLSIdentity, generate_identity
from knative_run_proxy.routing import BackendRouter, BackendTarget, RouteRule
from knative_run_proxy.server import ProxyServer, create_app
from knative_run_proxy.translator import StatusEnvelope

__version__ = "0.1.0"

__all__ = [
    "ProxyConfig",
    "RequestForwarder",
    "IdentityError",
    "TLSIdentity",
    "generate_identity",
    "BackendRouter",
    "BackendTarget",
    "RouteRule",
    "ProxyServer",
    "create_app",
    "StatusEnvelope",
    "__version__",
]
