"""kdd -- Kubernetes Driven Development and Deployment.

Builds a set of code blocks with conditionally-triggered builders, packages
them as container images and publishes them to realm registries.
"""

__version__ = "0.4.0"
