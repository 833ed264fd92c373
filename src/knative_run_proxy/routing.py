"""
Backend selection for proxied requests.

Each inbound path maps to exactly one BackendTarget. Selection walks an
ordered table of rules and falls back to a default target, so every
path is classified and the result depends on nothing but the path.
"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Sequence

from knative_run_proxy.config import ProxyConfig

logger = logging.getLogger(__name__)

PathMatcher = Callable[[str], bool]


@dataclass(frozen=True)
class BackendTarget:
    """Where an inbound request is sent and how the peer is checked."""

    host: str
    scheme: str = "https"
    verify_peer: bool = True

    @property
    def base_url(self) -> str:
        return f"{self.scheme}://{self.host}"


@dataclass(frozen=True)
class RouteRule:
    """One row of the routing table."""

    name: str
    matcher: PathMatcher
    target: BackendTarget


def path_segments(path: str) -> List[str]:
    """Split a URL path into its segments, ignoring the leading slash."""
    return path.lstrip("/").split("/")


def namespace_matcher(marker: str = "namespaces") -> PathMatcher:
    """Build a matcher for namespaced resource paths.

    A path matches when the marker is a whole segment followed by at
    least one more segment, wherever it sits (watch paths put it after
    /watch/). Segments that merely contain the marker text, or a final
    segment equal to it, do not match.
    """

    def matches(path: str) -> bool:
        return marker in path_segments(path)[:-1]

    return matches


class BackendRouter:
    """Classifies request paths against an ordered rule table."""

    def __init__(self, rules: Sequence[RouteRule], default: RouteRule) -> None:
        """Initialize the router.

        Args:
            rules: Rules evaluated in order; first match wins
            default: Rule used when no other rule matches
        """
        self.rules = tuple(rules)
        self.default = default

    @classmethod
    def from_config(cls, config: ProxyConfig) -> "BackendRouter":
        """Build the two-class table: namespaced resources vs. discovery."""
        resources = RouteRule(
            name="resource",
            matcher=namespace_matcher(config.namespace_marker),
            target=BackendTarget(
                host=config.resource_backend,
                scheme=config.backend_scheme,
                verify_peer=True,
            ),
        )
        # The discovery host is addressed by IP, its certificate does not match
        discovery = RouteRule(
            name="discovery",
            matcher=lambda path: True,
            target=BackendTarget(
                host=config.discovery_backend,
                scheme=config.backend_scheme,
                verify_peer=False,
            ),
        )
        return cls(rules=[resources], default=discovery)

    def match(self, path: str) -> RouteRule:
        """Return the rule that claims the path."""
        for rule in self.rules:
            if rule.matcher(path):
                return rule
        return self.default

    def select(self, path: str) -> BackendTarget:
        """Return the backend target for the path."""
        rule = self.match(path)
        logger.debug(f"Path {path} classified as {rule.name} -> {rule.target.host}")
        return rule.target

    def classify(self, path: str) -> str:
        return self.match(path).name
