"""kdd container module.

Container image build and publish to realm registries, plus the per-cloud
provider hooks used while publishing.

Key classes:
    ContainerPublisher - image build, tag, push with auth-refresh retry
"""

from .docker import ContainerPublisher
from .provider import reconcile_before_publish, refresh_auth

__all__ = [
    "ContainerPublisher",
    "reconcile_before_publish",
    "refresh_auth",
]
