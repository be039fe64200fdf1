"""Rejects load balancers whose names cannot become Kubernetes identifiers."""

from __future__ import annotations

import logging

from ..translator import is_valid_name
from .models import UpstreamLoadBalancer

logger = logging.getLogger(__name__)


class NameFilter:
    """Splits load balancers into those that can be mirrored and those that cannot.

    A load balancer is rejected if its upstream name, or the name of any of
    its listeners, is not a valid DNS label. Unnamed listeners are allowed.
    """

    def apply(
        self,
        load_balancers: list[UpstreamLoadBalancer],
        partition: str = "",
    ) -> tuple[list[UpstreamLoadBalancer], list[UpstreamLoadBalancer]]:
        kept: list[UpstreamLoadBalancer] = []
        rejected: list[UpstreamLoadBalancer] = []
        for lb in load_balancers:
            if self._valid(lb, partition):
                kept.append(lb)
            else:
                rejected.append(lb)
        if rejected:
            logger.info(
                "Name filter removed %d of %d load balancers",
                len(rejected), len(load_balancers),
                extra={"namespace": partition, "filtered": len(rejected)},
            )
        return kept, rejected

    def _valid(self, lb: UpstreamLoadBalancer, partition: str) -> bool:
        if not is_valid_name(lb.upstream_name):
            logger.warning(
                "Skipping load balancer %r: invalid name", lb.upstream_name,
                extra={"namespace": partition},
            )
            return False

        for listener in lb.listeners:
            if listener.name and not is_valid_name(listener.name):
                logger.warning(
                    "Skipping load balancer %r: listener %r has an invalid name",
                    lb.upstream_name, listener.name,
                    extra={"namespace": partition},
                )
                return False

        return True
